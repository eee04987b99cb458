"""
gbasm Command-Line Interface
============================

- **gbasm**: Game Boy assembler front end

Implemented as a Click-based CLI application.
"""

__all__ = ["gbasm"]
