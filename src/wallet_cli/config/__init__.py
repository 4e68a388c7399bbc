"""Configuration layer — settings and logging setup.

Rules
-----
* No imports from ``cli``, ``core``, or ``infra``.
* No user-facing output.
"""

from wallet_cli.config.logging import configure_logging
from wallet_cli.config.settings import SimulatorConfig, WalletSettings

__all__: list[str] = [
    "SimulatorConfig",
    "WalletSettings",
    "configure_logging",
]
