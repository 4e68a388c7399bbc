"""Infrastructure layer — bundled collaborators for the core.

This layer provides the simulated wallet engine, the simulated signing
device and desktop notification delivery.  Storage and subprocess
failures are caught here and re-raised as
:class:`~wallet_cli.exceptions.WalletCliError` subclasses, or swallowed
where delivery is best effort.

Rules
-----
* No imports from ``cli``.
* No user-facing output (no ``print()``, no Rich rendering).
* Must satisfy the protocols in :mod:`wallet_cli.core.protocols`.
"""

from wallet_cli.infra.device_simulator import SimulatedSigningDevice
from wallet_cli.infra.local_engine import LocalAccountHandle, LocalWalletEngine
from wallet_cli.infra.notifier import DesktopNotifier, NotifierStatus, detect_notifier

__all__: list[str] = [
    "DesktopNotifier",
    "LocalAccountHandle",
    "LocalWalletEngine",
    "NotifierStatus",
    "SimulatedSigningDevice",
    "detect_notifier",
]
