"""
gbasm Configuration
===================

Assembler configuration shared by the Assembler facade and the command-line
driver. Configuration can come from:
- Default values (defined here)
- Environment variables (from_env)
- Command-line options, applied on top of from_env() by the CLI

Predefined symbols are EQU constants that exist before the first line of
source is parsed, the equivalent of ``NAME equ VALUE`` at the top of the file.
"""

from dataclasses import dataclass, field
from typing import Dict
import logging
import os


@dataclass
class AssemblerConfig:
    """
    Configuration for one assembly run.

    Attributes:
        defines: Predefined EQU symbols (name -> value)
        max_errors: Error limit of the diagnostics collector (default: 100)
        warnings_as_errors: Record warnings as errors (default: False)
        export_all: Export every label, as if each were declared with '::'
        log_level: Name of the logging level for the CLI (default: "WARNING")
    """

    # ═══════════════════════════════════════════════════════════════════════════
    # SYMBOLS
    # ═══════════════════════════════════════════════════════════════════════════

    defines: Dict[str, int] = field(default_factory=dict)
    export_all: bool = False

    # ═══════════════════════════════════════════════════════════════════════════
    # DIAGNOSTICS
    # ═══════════════════════════════════════════════════════════════════════════

    max_errors: int = 100
    warnings_as_errors: bool = False
    log_level: str = "WARNING"

    # ═══════════════════════════════════════════════════════════════════════════
    # FACTORY METHODS
    # ═══════════════════════════════════════════════════════════════════════════

    @classmethod
    def from_env(cls) -> "AssemblerConfig":
        """
        Create AssemblerConfig from environment variables.

        Environment variables (all optional):
            GBASM_MAX_ERRORS: Error limit (integer)
            GBASM_WARNINGS_AS_ERRORS: "1", "true" or "yes" to enable
            GBASM_EXPORT_ALL: "1", "true" or "yes" to enable
            GBASM_LOG_LEVEL: Logging level name (e.g., "DEBUG")

        Returns:
            AssemblerConfig with values from environment variables
        """
        config = cls()

        if max_errors := os.environ.get("GBASM_MAX_ERRORS"):
            try:
                config.max_errors = int(max_errors)
            except ValueError:
                pass  # Ignore invalid values

        if werror := os.environ.get("GBASM_WARNINGS_AS_ERRORS"):
            config.warnings_as_errors = _is_truthy(werror)

        if export_all := os.environ.get("GBASM_EXPORT_ALL"):
            config.export_all = _is_truthy(export_all)

        if log_level := os.environ.get("GBASM_LOG_LEVEL"):
            if log_level.upper() in logging.getLevelNamesMapping():
                config.log_level = log_level.upper()

        return config

    # ═══════════════════════════════════════════════════════════════════════════
    # HELPER METHODS
    # ═══════════════════════════════════════════════════════════════════════════

    def define(self, name: str, value: int) -> None:
        """Add a predefined EQU symbol."""
        self.defines[name] = value

    def numeric_log_level(self) -> int:
        return logging.getLevelNamesMapping().get(self.log_level.upper(), logging.WARNING)


def _is_truthy(text: str) -> bool:
    return text.strip().lower() in ("1", "true", "yes", "on")
