"""
gbasm - Game Boy Assembler Command-Line Interface
=================================================

Runs the assembler front end over one source file and reports errors,
warnings and assertion failures. Optionally writes a symbol dump and an
instruction listing.

Usage Examples
--------------
Check a file:
    $ gbasm game.asm

Symbol dump and listing:
    $ gbasm game.asm -s game.sym -l game.lst

Predefined symbols, warnings as errors:
    $ gbasm -D DEBUG=1 -D LEVELS=$10 -W game.asm

From standard input:
    $ cat game.asm | gbasm -
"""

from pathlib import Path
from typing import Optional
import logging
import sys

import click

from gbasm import __version__
from gbasm.assembler import Assembler
from gbasm.cli.errors import ExitCode, handle_cli_exception
from gbasm.config import AssemblerConfig

logger = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def parse_define(definition: str) -> tuple[str, int]:
    """
    Parse a -D option: NAME, NAME=VALUE with VALUE in decimal, $hex,
    0xhex or %binary. A bare NAME is defined as 1.

    Raises:
        click.BadParameter: If the name is empty or the value is malformed
    """
    name, separator, value_text = definition.partition("=")
    name = name.strip()
    if not name:
        raise click.BadParameter(f"missing symbol name in '{definition}'", param_hint="-D")
    if not separator:
        return name, 1

    value_text = value_text.strip()
    try:
        if value_text.startswith("$"):
            value = int(value_text[1:], 16)
        elif value_text.lower().startswith("0x"):
            value = int(value_text[2:], 16)
        elif value_text.startswith("%"):
            value = int(value_text[1:], 2)
        else:
            value = int(value_text)
    except ValueError:
        raise click.BadParameter(f"invalid value in '{definition}'", param_hint="-D") from None
    return name, value


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, allow_dash=True, path_type=Path),
)
@click.option(
    "-D", "--define",
    multiple=True,
    help="Define an EQU symbol (format: NAME=VALUE, repeatable)",
)
@click.option(
    "-s", "--symbols",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the symbol table to FILE",
)
@click.option(
    "-l", "--listing",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write an instruction listing to FILE",
)
@click.option(
    "--export-all",
    is_flag=True,
    help="Export every label, as if declared with '::'",
)
@click.option(
    "-W", "--werror",
    is_flag=True,
    help="Treat warnings as errors",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output (log level INFO)",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Logging level (default: GBASM_LOG_LEVEL or WARNING)",
)
@click.version_option(version=__version__, prog_name="gbasm")
def main(
    input_file: Path,
    define: tuple[str, ...],
    symbols: Optional[Path],
    listing: Optional[Path],
    export_all: bool,
    werror: bool,
    verbose: bool,
    log_level: Optional[str],
) -> None:
    """
    Assemble Game Boy (SM83) source code.

    INPUT_FILE is the assembly source file; use - to read standard input.

    \b
    Examples:
        gbasm game.asm                  # Check for errors
        gbasm game.asm -s game.sym      # Write the symbol table
        gbasm -D DEBUG=1 game.asm       # Define symbol
    """
    config = AssemblerConfig.from_env()
    if log_level:
        config.log_level = log_level.upper()
    elif verbose:
        config.log_level = "INFO"
    config.export_all = config.export_all or export_all
    config.warnings_as_errors = config.warnings_as_errors or werror

    logging.basicConfig(
        level=config.numeric_log_level(),
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        for definition in define:
            name, value = parse_define(definition)
            config.define(name, value)

        asm = Assembler(config)

        if str(input_file) == "-":
            asm.assemble(click.get_text_stream("stdin").read(), "<stdin>")
        else:
            asm.assemble_file(input_file)

        if asm.output:
            click.echo("".join(asm.output), nl=False)

        if asm.diagnostics.diagnostics:
            click.echo(asm.get_error_report(), err=True)
        if asm.has_errors():
            sys.exit(ExitCode.BUILD_ERROR)

        if symbols:
            asm.write_symbols(symbols)
        if listing:
            asm.write_listing(listing)

        if verbose:
            click.echo(f"Assembled {input_file}: {len(asm.statements)} statements, "
                       f"{len(asm.get_symbols())} symbols")

    except Exception as e:
        handle_cli_exception(e, verbose=verbose)


if __name__ == "__main__":
    main()
