# =============================================================================
# test_symbols.py - Symbol Table and Assembler State Tests
# =============================================================================
# Tests for the per-unit assembler state.
#
# Test coverage includes:
#   - Label, EQU, SET and EQUS definitions and redefinition rules
#   - Local label scoping
#   - The RS storage cursor
#   - Exports and purging
#   - Section tracking, load blocks and the section stack
# =============================================================================

import pytest
from gbasm.assembler.sections import SectionType, make_section
from gbasm.assembler.symbols import RS_SYMBOL, AssemblerState, SymbolKind
from gbasm.errors import (
    AssemblerError,
    RedefinitionError,
    SectionError,
    SourceLocation,
    UndefinedScopeError,
)


@pytest.fixture
def state():
    return AssemblerState()


# =============================================================================
# Definition Tests
# =============================================================================

class TestDefinitions:
    """Symbol kinds and their redefinition rules."""

    def test_constant(self, state):
        symbol = state.define_constant("SIZE", 16)
        assert symbol.kind == SymbolKind.EQU
        assert state.lookup_value("SIZE") == 16

    def test_constant_wraps(self, state):
        assert state.define_constant("BIG", 0x1_0000_0001).value == 1

    def test_constant_redefinition(self, state):
        first = SourceLocation("game.asm", 1, 1)
        state.define_constant("SIZE", 16, location=first)
        with pytest.raises(RedefinitionError) as info:
            state.define_constant("SIZE", 32, location=SourceLocation("game.asm", 2, 1))
        assert info.value.original_location == first
        assert "game.asm:1:1" in str(info.value)

    def test_mutable_redefinition(self, state):
        state.define_mutable("COUNT", 1)
        state.define_mutable("COUNT", 2)
        assert state.lookup_value("COUNT") == 2

    def test_mutable_cannot_replace_constant(self, state):
        state.define_constant("SIZE", 16)
        with pytest.raises(RedefinitionError):
            state.define_mutable("SIZE", 1)

    def test_constant_replaces_mutable(self, state):
        state.define_mutable("COUNT", 1)
        state.define_constant("COUNT", 2)
        assert state.lookup("COUNT").kind == SymbolKind.EQU
        assert state.lookup_value("COUNT") == 2
        with pytest.raises(RedefinitionError):
            state.define_mutable("COUNT", 3)

    def test_string_and_label_replace_mutable(self, state):
        state.define_mutable("TITLE", 1)
        state.define_string_constant("TITLE", "TETRIS")
        assert state.lookup_value("TITLE") == "TETRIS"
        state.define_mutable("Main", 0)
        state.define_label("Main")
        assert state.lookup("Main").kind == SymbolKind.LABEL

    def test_storage_cursor_stays_mutable(self, state):
        with pytest.raises(RedefinitionError):
            state.define_constant("_RS", 4)
        assert state.rs == 0

    def test_string_constant(self, state):
        state.define_string_constant("TITLE", "TETRIS")
        assert state.lookup_value("TITLE") == "TETRIS"
        assert state.lookup("TITLE").kind == SymbolKind.EQUS

    def test_undefined(self, state):
        assert state.lookup_value("Nothing") is None
        assert not state.is_defined("Nothing")
        assert "Nothing" not in state


# =============================================================================
# Label and Scope Tests
# =============================================================================

class TestLabels:
    """Labels, addresses and local scopes."""

    def test_label_outside_section_is_absolute(self, state):
        state.advance_pc(3)
        state.define_label("Here")
        assert state.lookup_value("Here") == 3

    def test_label_in_fixed_section(self, state):
        state.enter_section(make_section("Main", SectionType.ROM0, address=0x150))
        state.advance_pc(4)
        symbol = state.define_label("Loop")
        assert symbol.value == 4
        assert symbol.section == "Main"
        assert state.lookup_value("Loop") == 0x154

    def test_label_in_floating_section_is_unknown(self, state):
        state.enter_section(make_section("Code", SectionType.ROMX))
        state.define_label("Entry")
        assert state.lookup_value("Entry") is None
        assert state.is_defined("Entry")

    def test_local_label_is_qualified(self, state):
        state.define_label("Global")
        symbol = state.define_label(".local")
        assert symbol.name == "Global.local"
        assert symbol.is_local
        assert state.qualify(".local") == "Global.local"

    def test_local_label_does_not_change_scope(self, state):
        state.define_label("Global")
        state.define_label(".first")
        state.define_label(".second")
        assert state.scope == "Global"

    def test_new_global_changes_scope(self, state):
        state.define_label("First")
        state.define_label("Second")
        assert state.define_label(".loop").name == "Second.loop"

    def test_local_label_without_scope(self, state):
        with pytest.raises(UndefinedScopeError):
            state.define_label(".orphan")

    def test_label_redefinition(self, state):
        state.define_label("Main")
        with pytest.raises(RedefinitionError):
            state.define_label("Main")

    def test_export_all(self):
        state = AssemblerState(export_all=True)
        assert state.define_label("Main").exported


# =============================================================================
# Storage Cursor Tests
# =============================================================================

class TestStorage:
    """The RS cursor behind rb/rw/rl."""

    def test_fields_advance_cursor(self, state):
        assert state.advance_storage(4) == 0
        assert state.advance_storage(4) == 4
        assert state.rs == 8
        assert state.lookup_value(RS_SYMBOL) == 8

    def test_reset(self, state):
        state.advance_storage(10)
        state.reset_storage()
        assert state.rs == 0
        state.reset_storage(0x20)
        assert state.advance_storage(2) == 0x20


# =============================================================================
# Export and Purge Tests
# =============================================================================

class TestExportAndPurge:
    """Export requests and symbol removal."""

    def test_export_defined(self, state):
        state.define_constant("SIZE", 1)
        state.export("SIZE")
        assert state.lookup("SIZE").exported

    def test_export_before_definition(self, state):
        state.export("Later")
        assert "Later" in state.pending_exports
        state.define_label("Later")
        assert state.lookup("Later").exported
        assert not state.pending_exports

    def test_purge(self, state):
        state.define_constant("TMP", 1)
        state.purge("TMP")
        assert not state.is_defined("TMP")

    def test_purge_undefined(self, state):
        with pytest.raises(AssemblerError, match="undefined"):
            state.purge("Nothing")

    def test_purge_label(self, state):
        state.define_label("Main")
        with pytest.raises(AssemblerError, match="label"):
            state.purge("Main")

    def test_purge_exported(self, state):
        state.define_constant("API", 1, export=True)
        with pytest.raises(AssemblerError, match="exported"):
            state.purge("API")

    def test_purge_rs(self, state):
        with pytest.raises(AssemblerError, match="built-in"):
            state.purge(RS_SYMBOL)


# =============================================================================
# Section Tracking Tests
# =============================================================================

class TestSections:
    """Current section, load blocks and the section stack."""

    def test_resume_section(self, state):
        main = make_section("Main", SectionType.ROM0)
        state.enter_section(main)
        state.advance_pc(5)
        state.enter_section(make_section("Other", SectionType.ROM0))
        state.enter_section(main)
        assert state.pc == 5
        assert state.section_size("Main") == 5

    def test_conflicting_redeclaration(self, state):
        state.enter_section(make_section("Main", SectionType.ROM0))
        with pytest.raises(SectionError, match="already declared"):
            state.enter_section(make_section("Main", SectionType.ROMX))

    def test_load_block(self, state):
        state.enter_section(make_section("Code", SectionType.ROM0))
        state.advance_pc(2)
        state.enter_load(make_section("Fast", SectionType.HRAM, address=0xFF80, load=True))
        label = state.define_label("Routine")
        state.advance_pc(3)
        assert label.section == "Fast"
        assert state.lookup_value("Routine") == 0xFF80
        assert state.pc == 5
        state.end_load()
        assert state.section_size("Fast") == 3
        assert state.section.name == "Code"

    def test_load_outside_section(self, state):
        with pytest.raises(SectionError, match="outside a section"):
            state.enter_load(make_section("Fast", SectionType.HRAM, load=True))

    def test_section_inside_load(self, state):
        state.enter_section(make_section("Code", SectionType.ROM0))
        state.enter_load(make_section("Fast", SectionType.HRAM, load=True))
        with pytest.raises(SectionError, match="inside load block"):
            state.enter_section(make_section("Other", SectionType.ROM0))

    def test_endl_without_load(self, state):
        with pytest.raises(SectionError, match="endl"):
            state.end_load()

    def test_push_pop(self, state):
        state.enter_section(make_section("Main", SectionType.ROM0))
        state.advance_pc(7)
        state.push_section()
        assert state.section is None
        state.enter_section(make_section("Data", SectionType.ROMX))
        state.advance_pc(1)
        state.pop_section()
        assert state.section.name == "Main"
        assert state.pc == 7

    def test_pop_empty(self, state):
        with pytest.raises(SectionError, match="section stack"):
            state.pop_section()
