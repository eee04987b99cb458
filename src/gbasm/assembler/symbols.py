"""
Symbol Table and Assembler State
================================

One AssemblerState exists per assembly unit. It owns:

- the symbol table (labels, EQU/SET constants, EQUS strings)
- the RS storage cursor, kept in the built-in ``_RS`` symbol
- the current global-label scope used to qualify local labels
- the current section, the section stack and the program counter
- exports requested before the symbol was defined

Only the parser's semantic actions change the state.

Symbol Kinds
------------

| Kind  | Defined by               | Redefinable        |
|-------|--------------------------|--------------------|
| LABEL | ``Name:``, ``.local:``   | no                 |
| EQU   | ``Name equ 1``, rb/rw/rl | no                 |
| SET   | ``Name set 1``, ``= 1``  | yes, by any kind   |
| EQUS  | ``Name equs "text"``     | no                 |

Local Labels
------------
A name starting with '.' belongs to the last global label defined before
it. ``.loop`` after ``Main:`` is stored as ``Main.loop``; using a local
label before any global label is an UndefinedScopeError.

Label Values
------------
A label stores its offset from the start of its section. Its address is
known only when the section has a fixed address (or when no section is
open); otherwise the linker decides it, and expressions using it are
deferred.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, Optional
import logging

from gbasm.errors import (
    AssemblerError,
    RedefinitionError,
    SectionError,
    SourceLocation,
    UndefinedScopeError,
)
from gbasm.assembler.expressions import wrap_i32
from gbasm.assembler.sections import SectionDescriptor

logger = logging.getLogger(__name__)

RS_SYMBOL = "_RS"


# =============================================================================
# Symbols
# =============================================================================

class SymbolKind(Enum):
    LABEL = auto()
    EQU = auto()
    SET = auto()
    EQUS = auto()


@dataclass
class Symbol:
    """
    One entry of the symbol table.

    Attributes:
        name: Qualified name (``Global.local`` for local labels)
        kind: How the symbol was defined
        value: int for numeric symbols (section offset for labels), str for EQUS
        exported: Visible to other assembly units
        section: Name of the section a label belongs to
        location: Where the symbol was defined (None for built-ins)
    """
    name: str
    kind: SymbolKind
    value: int | str
    exported: bool = False
    section: Optional[str] = None
    location: Optional[SourceLocation] = None

    @property
    def is_local(self) -> bool:
        return "." in self.name


@dataclass
class _SectionContext:
    """Saved section state for pushs/pops."""
    section: Optional[SectionDescriptor]
    pc: int
    load: Optional[SectionDescriptor]
    load_pc: int


# =============================================================================
# Assembler State
# =============================================================================

class AssemblerState:
    """
    Symbol table, storage cursor, scope and section tracking for one unit.

    Usage:
        state = AssemblerState()
        state.define_label("Main")
        state.qualify(".loop")        # "Main.loop"
        state.define_constant("SIZE", 16)
        offset = state.advance_storage(4)

    Also the symbol resolver for expression evaluation (lookup_value).
    """

    def __init__(self, export_all: bool = False):
        """
        Args:
            export_all: Export every label as if it were declared with '::'
        """
        self.export_all = export_all

        self.symbols: dict[str, Symbol] = {}
        self.scope: Optional[str] = None
        self.pending_exports: dict[str, Optional[SourceLocation]] = {}

        # Sections
        self.sections: dict[str, SectionDescriptor] = {}
        self.section: Optional[SectionDescriptor] = None
        self.pc = 0
        self.load: Optional[SectionDescriptor] = None
        self.load_pc = 0
        self._section_sizes: dict[str, int] = {}
        self._section_stack: list[_SectionContext] = []

        self.symbols[RS_SYMBOL] = Symbol(RS_SYMBOL, SymbolKind.SET, 0)

    # =========================================================================
    # Lookup (resolver protocol)
    # =========================================================================

    def lookup(self, name: str) -> Optional[Symbol]:
        return self.symbols.get(name)

    def lookup_value(self, name: str) -> Optional[int | str]:
        """
        Current value of a symbol, or None if it is not known yet.

        Labels in sections without a fixed address have no value until
        link time.
        """
        symbol = self.symbols.get(name)
        if symbol is None:
            return None
        if symbol.kind == SymbolKind.LABEL:
            return self.label_address(symbol)
        return symbol.value

    def is_defined(self, name: str) -> bool:
        return name in self.symbols

    def label_address(self, symbol: Symbol) -> Optional[int]:
        """Absolute address of a label, when its section is fixed."""
        if symbol.section is None:
            return symbol.value
        descriptor = self.sections.get(symbol.section)
        if descriptor is None or descriptor.address is None:
            return None
        return wrap_i32(descriptor.address + symbol.value)

    def __iter__(self) -> Iterator[Symbol]:
        return iter(self.symbols.values())

    def __contains__(self, name: str) -> bool:
        return name in self.symbols

    # =========================================================================
    # Scoping
    # =========================================================================

    def resolve_local_label(self, spelling: str) -> str:
        """
        Qualify a local spelling with the current global label.

        Raises:
            UndefinedScopeError: If no global label has been defined yet
        """
        if self.scope is None:
            raise UndefinedScopeError(spelling)
        return f"{self.scope}{spelling}"

    def qualify(self, spelling: str) -> str:
        """Qualify local spellings; global spellings are returned unchanged."""
        if spelling.startswith("."):
            return self.resolve_local_label(spelling)
        return spelling

    # =========================================================================
    # Definitions
    # =========================================================================

    def define_label(
        self,
        spelling: str,
        exported: bool = False,
        location: Optional[SourceLocation] = None,
    ) -> Symbol:
        """
        Define a label at the current program counter.

        A global label becomes the scope for the local labels that follow.

        Raises:
            RedefinitionError: If the name is already defined, other than by SET
            UndefinedScopeError: For a local label outside any scope
        """
        name = self.qualify(spelling)
        section = self.load or self.section
        symbol = Symbol(
            name,
            SymbolKind.LABEL,
            self.load_pc if self.load else self.pc,
            exported=exported or self.export_all,
            section=section.name if section else None,
            location=location,
        )
        self._add(symbol)
        if "." not in name:
            self.scope = name
        return symbol

    def define_constant(
        self,
        name: str,
        value: int,
        export: bool = False,
        location: Optional[SourceLocation] = None,
    ) -> Symbol:
        """
        Define an EQU constant.

        Raises:
            RedefinitionError: If the name is already defined, other than by SET
        """
        symbol = Symbol(self.qualify(name), SymbolKind.EQU, wrap_i32(value),
                        exported=export, location=location)
        return self._add(symbol)

    def define_mutable(
        self,
        name: str,
        value: int,
        location: Optional[SourceLocation] = None,
    ) -> Symbol:
        """
        Define or update a SET symbol.

        Raises:
            RedefinitionError: If the name is defined with another kind
        """
        symbol = Symbol(self.qualify(name), SymbolKind.SET, wrap_i32(value), location=location)
        return self._add(symbol)

    def define_string_constant(
        self,
        name: str,
        text: str,
        location: Optional[SourceLocation] = None,
    ) -> Symbol:
        """
        Define an EQUS string constant.

        Raises:
            RedefinitionError: If the name is already defined, other than by SET
        """
        return self._add(Symbol(self.qualify(name), SymbolKind.EQUS, text, location=location))

    def _add(self, symbol: Symbol) -> Symbol:
        existing = self.symbols.get(symbol.name)
        if existing is not None:
            replaceable = existing.kind == SymbolKind.SET and (
                symbol.kind == SymbolKind.SET or symbol.name != RS_SYMBOL
            )
            if not replaceable:
                raise RedefinitionError(symbol.name, symbol.location, existing.location)
            if symbol.kind == SymbolKind.SET:
                existing.value = symbol.value
                logger.debug(f"Set {symbol.name} = {symbol.value}")
                return existing
            # A SET symbol gives way to any other kind
            symbol.exported = symbol.exported or existing.exported
            logger.debug(f"Replacing SET {symbol.name} with {symbol.kind.name}")

        if symbol.name in self.pending_exports:
            del self.pending_exports[symbol.name]
            symbol.exported = True

        self.symbols[symbol.name] = symbol
        logger.debug(f"Defined {symbol.kind.name} {symbol.name} = {symbol.value!r}"
                     + (" (exported)" if symbol.exported else ""))
        return symbol

    def export(self, name: str, location: Optional[SourceLocation] = None) -> None:
        """
        Export a symbol, now if it is defined or else as soon as it is.
        """
        name = self.qualify(name)
        symbol = self.symbols.get(name)
        if symbol is None:
            self.pending_exports.setdefault(name, location)
            logger.debug(f"Export of {name} pending until definition")
            return
        symbol.exported = True

    def purge(self, name: str) -> None:
        """
        Remove a symbol from the table.

        Raises:
            AssemblerError: If the symbol is undefined, a label, exported,
                            or built in
        """
        name = self.qualify(name)
        symbol = self.symbols.get(name)
        if symbol is None:
            raise AssemblerError(f"cannot purge undefined symbol '{name}'")
        if name == RS_SYMBOL:
            raise AssemblerError(f"cannot purge built-in symbol '{name}'")
        if symbol.kind == SymbolKind.LABEL:
            raise AssemblerError(f"cannot purge label '{name}'")
        if symbol.exported:
            raise AssemblerError(f"cannot purge exported symbol '{name}'")
        del self.symbols[name]
        logger.debug(f"Purged {name}")

    # =========================================================================
    # RS Storage Cursor
    # =========================================================================

    @property
    def rs(self) -> int:
        return self.symbols[RS_SYMBOL].value

    def advance_storage(self, byte_count: int) -> int:
        """
        Move the storage cursor forward.

        Returns:
            The cursor value before the move (the new field's offset)
        """
        previous = self.rs
        self.symbols[RS_SYMBOL].value = wrap_i32(previous + byte_count)
        return previous

    def reset_storage(self, value: int = 0) -> None:
        self.symbols[RS_SYMBOL].value = wrap_i32(value)

    # =========================================================================
    # Sections
    # =========================================================================

    def enter_section(self, descriptor: SectionDescriptor) -> None:
        """
        Make a section current, resuming at its end if it was seen before.

        Raises:
            SectionError: Inside a load block, or if the section was
                          declared before with different attributes
        """
        if self.load is not None:
            raise SectionError(f"section \"{descriptor.name}\" inside load block "
                               f"\"{self.load.name}\"", hint="close the load block with endl")
        self._register_section(descriptor)
        self._save_section_size()
        self.section = descriptor
        self.pc = self._section_sizes.get(descriptor.name, 0)
        logger.debug(f"Entering section {descriptor} at offset {self.pc}")

    def push_section(self) -> None:
        """Save the section context and leave the current section (pushs)."""
        self._save_section_size()
        self._section_stack.append(
            _SectionContext(self.section, self.pc, self.load, self.load_pc))
        self.section = None
        self.pc = 0
        self.load = None
        self.load_pc = 0
        logger.debug(f"Pushed section context (depth {len(self._section_stack)})")

    def pop_section(self) -> None:
        """
        Restore the section context saved by push_section (pops).

        Raises:
            SectionError: If the section stack is empty
        """
        if not self._section_stack:
            raise SectionError("no entries in the section stack", hint="pops without pushs")
        self._save_section_size()
        context = self._section_stack.pop()
        self.section = context.section
        self.pc = self._section_sizes.get(context.section.name, 0) if context.section else context.pc
        self.load = context.load
        self.load_pc = context.load_pc
        logger.debug(f"Popped section context, now in "
                     f"{self.section.name if self.section else 'no section'}")

    def enter_load(self, descriptor: SectionDescriptor) -> None:
        """
        Start a load block: code stays in the current section, labels take
        addresses in the load section.

        Raises:
            SectionError: Outside a section, or inside another load block
        """
        if self.section is None:
            raise SectionError(f"load block \"{descriptor.name}\" outside a section")
        if self.load is not None:
            raise SectionError(f"load block \"{descriptor.name}\" inside load block "
                               f"\"{self.load.name}\"", hint="close the load block with endl")
        self._register_section(descriptor)
        self.load = descriptor
        self.load_pc = self._section_sizes.get(descriptor.name, 0)
        logger.debug(f"Entering load block {descriptor} at offset {self.load_pc}")

    def end_load(self) -> None:
        """
        Raises:
            SectionError: If no load block is open
        """
        if self.load is None:
            raise SectionError("endl without a load block")
        self._section_sizes[self.load.name] = self.load_pc
        logger.debug(f"Leaving load block {self.load.name}")
        self.load = None
        self.load_pc = 0

    def advance_pc(self, byte_count: int) -> None:
        """Account for emitted bytes in the current section (and load block)."""
        self.pc += byte_count
        if self.load is not None:
            self.load_pc += byte_count

    def _register_section(self, descriptor: SectionDescriptor) -> None:
        existing = self.sections.get(descriptor.name)
        if existing is not None and existing != descriptor:
            raise SectionError(f"section \"{descriptor.name}\" already declared as {existing}")
        self.sections[descriptor.name] = descriptor

    def _save_section_size(self) -> None:
        if self.section is not None:
            self._section_sizes[self.section.name] = self.pc
        if self.load is not None:
            self._section_sizes[self.load.name] = self.load_pc

    def section_size(self, name: str) -> int:
        """Bytes emitted so far into a section."""
        self._save_section_size()
        return self._section_sizes.get(name, 0)
