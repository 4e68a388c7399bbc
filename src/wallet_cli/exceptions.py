"""Custom exception hierarchy for wallet-cli.

All exceptions that cross layer boundaries must inherit from
:class:`WalletCliError`.  Raw exceptions raised by a wallet engine or a
signing device must NEVER propagate beyond the executor — they are
caught there and turned into an :class:`~wallet_cli.core.models.Outcome`.

Hierarchy
---------
WalletCliError
├── ParseError
│   ├── UnknownCommandError
│   └── InvalidArgumentError
├── EngineError
│   ├── AccountNotFoundError
│   ├── AccountExistsError
│   └── InsufficientFundsError
├── DeviceError
├── SessionBusyError
├── ConfirmationInProgressError
├── OperationCancelled
├── FatalIOError
└── EnvironmentError
    └── EnvironmentCheckError
"""

from __future__ import annotations


class WalletCliError(Exception):
    """Base exception for all wallet-cli errors.

    Every user-visible error condition must map to a subclass of this
    exception so that the CLI error boundary can render a clean message
    without leaking internal stack traces.
    """

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint: str | None = hint
        """Optional actionable guidance shown below the error message."""


# --- Command parsing -------------------------------------------------------

class ParseError(WalletCliError):
    """Raised when a line of user input cannot be turned into a command."""


class UnknownCommandError(ParseError):
    """Raised when the first token does not name a known command."""

    def __init__(self, command: str) -> None:
        super().__init__(
            f"Unknown command: {command}",
            hint="Type 'help' to list the available commands.",
        )
        self.command: str = command


class InvalidArgumentError(ParseError):
    """Raised on wrong arity or a malformed argument."""

    def __init__(self, field: str, reason: str, *, hint: str | None = None) -> None:
        super().__init__(f"Invalid {field}: {reason}", hint=hint)
        self.field: str = field
        self.reason: str = reason


# --- Wallet engine ---------------------------------------------------------

class EngineError(WalletCliError):
    """Raised when the wallet engine rejects or fails an operation."""


class AccountNotFoundError(EngineError):
    """Raised when an account alias or id is unknown to the engine."""


class AccountExistsError(EngineError):
    """Raised when creating an account whose alias is already taken."""


class InsufficientFundsError(EngineError):
    """Raised when a transfer exceeds the available balance."""


class TransactionNotFoundError(EngineError):
    """Raised when a message id matches no suitable transaction."""


# --- Signing device --------------------------------------------------------

class DeviceError(WalletCliError):
    """Raised by signing devices on disconnects or simulator crashes."""


class ConfirmationInProgressError(WalletCliError):
    """Raised when a second confirmation is requested while one is pending.

    This always indicates a logic error upstream: the session must never
    let two signing operations reach the device at the same time.
    """


# --- Session ---------------------------------------------------------------

class SessionBusyError(WalletCliError):
    """Raised when a mutating command arrives while another is in flight."""


class OperationCancelled(WalletCliError):
    """Raised inside the executor when a cancellation token fires."""


class FatalIOError(WalletCliError):
    """Raised when the REPL input stream is broken beyond recovery."""


# --- Environment / tooling -------------------------------------------------

class EnvironmentError(WalletCliError):
    """Raised when a required runtime dependency is not available."""


class EnvironmentCheckError(EnvironmentError):
    """Raised when a required environment precondition is not met."""
