"""Allow ``python -m wallet_cli`` invocation.

This module simply delegates to the CLI error-boundary entry point so
that ``python -m wallet_cli`` behaves identically to the ``wallet``
console script.
"""

from __future__ import annotations

from wallet_cli.cli.app import cli

if __name__ == "__main__":
    cli()
