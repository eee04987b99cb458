# =============================================================================
# test_assembler.py - Full Assembler Integration Tests
# =============================================================================
# End-to-end tests for the assembler front end: source text in, statements,
# symbols, diagnostics, symbol dump and listing out.
#
# Test coverage includes:
#   - Complete unit assembly and predefined symbols
#   - Assertion severities, point-of-parse evaluation, deferred assertions
#   - warn/fail and print directives
#   - Checks run once the unit is parsed (jr, rst, ldh)
#   - Symbol dump and listing output
# =============================================================================

import pytest
from pathlib import Path

from gbasm.assembler import Assembler
from gbasm.assembler.assembler import assemble
from gbasm.assembler.parser import InstructionStatement
from gbasm.config import AssemblerConfig
from gbasm.errors import (
    AddressOutOfRangeError,
    AssertionFailure,
    ExpressionError,
    ExpressionNotConstantError,
    Severity,
    TooManyErrors,
)


# =============================================================================
# Helper Functions
# =============================================================================

def run(source: str, **options) -> Assembler:
    asm = Assembler(AssemblerConfig(**options))
    asm.assemble(source, "test.asm")
    return asm


# =============================================================================
# Full Pipeline Tests
# =============================================================================

class TestFullPipeline:
    """Assemble complete units."""

    def test_minimal_program(self):
        statements = Assembler().assemble("nop\n")
        assert len(statements) == 1

    def test_program_with_sections(self):
        source = """
section "Header", rom0[$100]
Entry:
    nop
    jp Start

section "Main", rom0[$150]
Start:
    ld a, $41
.loop:
    dec a
    jr nz, .loop
    halt
"""
        asm = run(source)
        symbols = asm.get_symbols()
        assert symbols["Entry"] == 0x100
        assert symbols["Start"] == 0x150
        assert symbols["Start.loop"] == 0x152
        assert not asm.has_errors()

    def test_fresh_state_each_run(self):
        asm = Assembler()
        asm.assemble("SIZE equ 1\n")
        asm.assemble("SIZE equ 2\n")
        assert asm.get_symbols()["SIZE"] == 2

    def test_predefined_symbols(self):
        asm = run("if DEBUG\nnop\nendc\n", defines={"DEBUG": 1})
        assert asm.get_symbols()["DEBUG"] == 1

    def test_define_symbol(self):
        asm = Assembler()
        asm.define_symbol("LEVELS", 8)
        asm.assemble("assert LEVELS == 8\n")
        assert not asm.has_errors()

    def test_export_all(self):
        asm = run("Main:\n", export_all=True)
        assert asm.state.lookup("Main").exported

    def test_assemble_file(self, tmp_path):
        path = tmp_path / "game.asm"
        path.write_text("Main:\n  nop\n")
        statements = Assembler().assemble_file(path)
        assert statements[0].location.filename == str(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Assembler().assemble_file(tmp_path / "missing.asm")

    def test_convenience_function(self):
        assert isinstance(assemble("nop\n")[0], InstructionStatement)


# =============================================================================
# Assertion Tests
# =============================================================================

class TestAssertions:
    """assert and static_assert handling."""

    def test_true_assert(self):
        asm = run("assert 1 == 1\n")
        assert not asm.diagnostics.diagnostics

    def test_warn(self):
        asm = run('assert warn, 0, "careful"\n')
        assert [d.message for d in asm.diagnostics.warnings] == ["careful"]
        assert not asm.has_errors()

    def test_fail_continues(self):
        asm = run("assert 0\nnop\n")
        assert asm.has_errors()
        assert asm.diagnostics.errors[0].message == "assertion failed: 0"
        assert asm.diagnostics.errors[0].location.line == 1
        assert isinstance(asm.statements[-1], InstructionStatement)

    def test_fatal_stops(self):
        with pytest.raises(AssertionFailure) as info:
            run('nop\nassert fatal, 1 > 2, "boom"\nnop\n')
        assert info.value.assert_message == "boom"
        assert info.value.location.line == 2
        assert "assertion failure: boom" in str(info.value)

    def test_evaluated_at_point_of_parse(self):
        asm = run("x = 1\nassert x == 1\nx = 2\nassert x == 2\n")
        assert not asm.has_errors()

    def test_forward_reference_checked_later(self):
        asm = run("assert Later == 5\nLater equ 5\n")
        assert asm.pending_assertions == []
        assert not asm.has_errors()

    def test_forward_reference_fails_later(self):
        asm = run("assert Later == 4\nLater equ 5\n")
        assert asm.has_errors()
        assert asm.diagnostics.errors[0].location.line == 1

    def test_floating_label_left_for_linker(self):
        asm = run('section "Code", romx\nassert Label == 0\nLabel:\n')
        assert not asm.diagnostics.diagnostics
        assert [a.location.line for a in asm.pending_assertions] == [2]

    def test_static_assert_needs_constant(self):
        with pytest.raises(ExpressionNotConstantError):
            run("static_assert Later == 1\nLater equ 1\n")

    def test_static_assert_false(self):
        asm = run("static_assert 1 == 2\n")
        assert asm.diagnostics.error_count() == 1

    def test_invalid_expression(self):
        with pytest.raises(ExpressionError):
            run("assert 1 / 0\n")

    def test_warnings_as_errors(self):
        asm = run("assert warn, 0\n", warnings_as_errors=True)
        assert asm.has_errors()

    def test_error_limit(self):
        with pytest.raises(TooManyErrors):
            run("assert 0\nassert 0\nassert 0\n", max_errors=2)


# =============================================================================
# Diagnostic and Print Directive Tests
# =============================================================================

class TestDiagnosticDirectives:
    """warn and fail directives."""

    def test_warn(self):
        asm = run('warn "slow path"\n')
        assert asm.diagnostics.diagnostics[0].severity == Severity.WARNING
        assert asm.diagnostics.diagnostics[0].message == "slow path"

    def test_fail_is_not_fatal(self):
        asm = run('fail "bad"\nnop\n')
        assert asm.has_errors()
        assert len(asm.statements) == 2

    def test_string_expression(self):
        asm = run('warn strcat("a", "b")\n')
        assert asm.diagnostics.warnings[0].message == "ab"

    def test_report(self):
        asm = run('warn "one"\nfail "two"\n')
        report = asm.get_error_report()
        assert "test.asm:1:1: warning: one" in report
        assert report.endswith("1 error, 1 warning")


class TestPrint:
    """print family output."""

    @pytest.mark.parametrize("source,expected", [
        ('println "hello"', "hello\n"),
        ("print 255", "$FF"),
        ("printv 16", "$10"),
        ("printi -3", "-3"),
        ("printf 1.5", "1.50000"),
        ('printt "x"', "x"),
        ('print "n=", 10', "n=$A"),
    ])
    def test_formats(self, source, expected):
        assert run(source + "\n").output == [expected]

    def test_string_symbol(self):
        assert run('NAME equs "Bob"\nprintln NAME\n').output == ["Bob\n"]

    def test_value_at_point_of_parse(self):
        assert run("x = 1\nprinti x\nx = 2\nprinti x\n").output == ["1", "2"]


# =============================================================================
# Resolution Tests
# =============================================================================

class TestResolution:
    """Checks that wait until the whole unit is parsed."""

    def test_jr_backward(self):
        asm = run('section "Main", rom0[$150]\nLoop:\n  jr Loop\n')
        assert not asm.has_errors()

    def test_jr_forward_out_of_range(self):
        with pytest.raises(AddressOutOfRangeError, match="jr target out of range") as info:
            run('section "Main", rom0[$0]\n  jr Far\n  ds 200\nFar:\n')
        assert info.value.location.line == 2

    def test_jr_in_floating_section_is_unchecked(self):
        run('section "Code", romx\n  jr Far\n  ds 200\nFar:\n')

    def test_rst_forward(self):
        with pytest.raises(AddressOutOfRangeError, match="invalid rst vector"):
            run("rst Vector\nVector equ $39\n")

    def test_rst_constant(self):
        with pytest.raises(AddressOutOfRangeError):
            run("rst $39\n")
        run("rst $38\n")

    def test_ldh_forward_outside_high_ram(self):
        with pytest.raises(AddressOutOfRangeError, match="ldh address"):
            run("ldh a, [hValue]\nhValue equ $C000\n")

    def test_ldh_forward_label_in_high_ram(self):
        source = (
            'section "Code", rom0\n'
            "  ldh a, [hCount]\n"
            'section "Vars", hram[$ff80]\n'
            "hCount: ds 1\n"
        )
        assert not run(source).has_errors()


# =============================================================================
# Output Tests
# =============================================================================

class TestSymbolDump:
    """Symbol table text output."""

    def test_dump(self):
        source = (
            'section "Main", rom0[$150]\n'
            "Start::\n"
            "SIZE equ 16\n"
            'NAME equs "x"\n'
        )
        lines = run(source).get_symbol_dump().splitlines()
        assert lines[0] == "; Symbol table"
        start = next(line for line in lines if line.startswith("Start"))
        assert "LABEL" in start
        assert "$0150" in start
        assert '"Main"' in start
        assert start.endswith("exported")
        size = next(line for line in lines if line.startswith("SIZE"))
        assert "EQU" in size and "$0010" in size
        name = next(line for line in lines if line.startswith("NAME"))
        assert name.endswith('"x"')

    def test_floating_label_shows_offset(self):
        asm = run('section "Code", romx\nnop\nnop\nEntry:\n')
        entry = next(line for line in asm.get_symbol_dump().splitlines()
                     if line.startswith("Entry"))
        assert "+$0002" in entry
        assert asm.get_symbols()["Entry"] == 2

    def test_write_symbols(self, tmp_path):
        path = tmp_path / "game.sym"
        run("Main:\n").write_symbols(path)
        assert "Main" in path.read_text()


class TestListing:
    """Instruction listing output."""

    def test_listing(self):
        asm = run('section "Main", rom0[$150]\nld a, $41\ncall Later\n')
        listing = asm.get_listing()
        assert listing.startswith("gbasm Listing")
        line = next(line for line in listing.splitlines() if "ld a, $41" in line)
        assert line.startswith("Main")
        assert "3E 41" in line
        pending = next(line for line in listing.splitlines() if "call Later" in line)
        assert "0002" in pending
        assert "CD ?? ??" in pending

    def test_write_listing(self, tmp_path):
        path = tmp_path / "game.lst"
        run("nop\n").write_listing(path)
        assert "00" in Path(path).read_text()
