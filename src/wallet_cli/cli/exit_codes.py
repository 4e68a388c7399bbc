"""Exit-code constants used by the CLI layer.

Centralised here so that every exit path uses a well-known, tested
value rather than magic integers scattered across the codebase.
"""

from __future__ import annotations

SUCCESS: int = 0
"""Clean exit — the session ended with ``exit`` or end of input."""

GENERAL_ERROR: int = 1
"""A known WalletCliError was caught. User-facing message was displayed."""

UNEXPECTED_ERROR: int = 2
"""An unhandled exception escaped all known error boundaries."""

FATAL_IO_ERROR: int = 3
"""The input stream broke while the REPL was reading commands."""

KEYBOARD_INTERRUPT: int = 130
"""User pressed Ctrl+C outside the REPL.  Follows POSIX convention (128 + SIGINT=2)."""
