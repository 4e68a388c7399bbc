"""Core / service layer — the session state machine and its collaborators.

Rules
-----
* No ``print()`` calls.
* No filesystem or network I/O of its own.
* No imports from ``cli`` or ``infra``.
* Wallet engines, devices and notifiers are reached only through the
  protocols in :mod:`wallet_cli.core.protocols`.
"""

from wallet_cli.core.cancellation import CancellationToken
from wallet_cli.core.confirmation import DeviceConfirmationBridge
from wallet_cli.core.executor import OperationExecutor
from wallet_cli.core.parser import parse
from wallet_cli.core.protocols import AccountHandle, Notifier, SigningDevice, WalletEngine
from wallet_cli.core.session import Session, SessionState

__all__: list[str] = [
    "AccountHandle",
    "CancellationToken",
    "DeviceConfirmationBridge",
    "Notifier",
    "OperationExecutor",
    "Session",
    "SessionState",
    "SigningDevice",
    "WalletEngine",
    "parse",
]
