"""
Section Descriptors
===================

A section is a named block of code or data placed in one of the Game Boy's
memory regions. ``section`` and ``load`` directives describe one:

    section "Main", rom0[$150]
    section "Level data", romx, bank[3], align[8]
    load "Fast copy", hram

Memory Regions
--------------

| Type  | Window      | Banked |
|-------|-------------|--------|
| rom0  | $0000-$3FFF | no     |
| romx  | $4000-$7FFF | 1-511  |
| vram  | $8000-$9FFF | 0-1    |
| sram  | $A000-$BFFF | 0-15   |
| wram0 | $C000-$CFFF | no     |
| wramx | $D000-$DFFF | 1-7    |
| oam   | $FE00-$FE9F | no     |
| hram  | $FF80-$FFFE | no     |
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from gbasm.errors import AddressOutOfRangeError, SectionError


class SectionType(Enum):
    """Memory region a section lives in. The value is the directive keyword."""
    ROM0 = "rom0"
    ROMX = "romx"
    VRAM = "vram"
    SRAM = "sram"
    WRAM0 = "wram0"
    WRAMX = "wramx"
    OAM = "oam"
    HRAM = "hram"

    @property
    def window(self) -> tuple[int, int]:
        """First and last address of the region."""
        return MEMORY_WINDOWS[self]

    @property
    def banked(self) -> bool:
        return self in BANK_RANGES

    def __str__(self) -> str:
        return self.value


MEMORY_WINDOWS = {
    SectionType.ROM0: (0x0000, 0x3FFF),
    SectionType.ROMX: (0x4000, 0x7FFF),
    SectionType.VRAM: (0x8000, 0x9FFF),
    SectionType.SRAM: (0xA000, 0xBFFF),
    SectionType.WRAM0: (0xC000, 0xCFFF),
    SectionType.WRAMX: (0xD000, 0xDFFF),
    SectionType.OAM: (0xFE00, 0xFE9F),
    SectionType.HRAM: (0xFF80, 0xFFFE),
}

BANK_RANGES = {
    SectionType.ROMX: (1, 511),
    SectionType.VRAM: (0, 1),
    SectionType.SRAM: (0, 15),
    SectionType.WRAMX: (1, 7),
}

MAX_ALIGNMENT = 16


@dataclass(frozen=True)
class SectionDescriptor:
    """
    Placement request for a section.

    Attributes:
        name: Section name
        type: Memory region
        address: Fixed start address, or None to let the linker place it
        bank: Fixed bank, or None (banked types only)
        alignment: Number of low address bits that must be zero, or None
        load: True for a ``load`` block (code stored here, run elsewhere)
    """
    name: str
    type: SectionType
    address: Optional[int] = None
    bank: Optional[int] = None
    alignment: Optional[int] = None
    load: bool = False

    def __str__(self) -> str:
        text = f'"{self.name}", {self.type}'
        if self.address is not None:
            text += f"[${self.address:04X}]"
        if self.bank is not None:
            text += f", bank[{self.bank}]"
        if self.alignment is not None:
            text += f", align[{self.alignment}]"
        return text


def make_section(
    name: str,
    section_type: SectionType,
    address: Optional[int] = None,
    bank: Optional[int] = None,
    alignment: Optional[int] = None,
    load: bool = False,
) -> SectionDescriptor:
    """
    Build a section descriptor, checking it against its memory region.

    Raises:
        AddressOutOfRangeError: If the address is outside the region's window
        SectionError: If the bank or alignment is not allowed
    """
    if address is not None:
        start, end = section_type.window
        if not start <= address <= end:
            raise AddressOutOfRangeError(
                f"section address ${address & 0xFFFFFFFF:X} is outside {section_type} "
                f"(${start:04X}-${end:04X})",
                value=address,
            )

    if bank is not None:
        if not section_type.banked:
            raise SectionError(
                f"bank[] is not allowed for {section_type} sections",
                hint="only romx, vram, sram and wramx are banked",
            )
        low, high = BANK_RANGES[section_type]
        if not low <= bank <= high:
            raise SectionError(f"bank {bank} is out of range for {section_type} ({low}-{high})")

    if alignment is not None:
        if not 0 <= alignment <= MAX_ALIGNMENT:
            raise SectionError(f"alignment must be between 0 and {MAX_ALIGNMENT}, got {alignment}")
        if address is not None and address & ((1 << alignment) - 1):
            raise SectionError(
                f"section address ${address:04X} is not aligned to {alignment} bits"
            )

    return SectionDescriptor(name, section_type, address, bank, alignment, load)
