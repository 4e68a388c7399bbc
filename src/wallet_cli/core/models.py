"""Domain models for wallet-cli.

All models are **frozen** dataclasses — immutable value objects with no
behaviour beyond data access.  They carry zero I/O and zero dependencies
on external packages.

Commands form a closed set: every class in :data:`COMMAND_TYPES` is
handled by an exhaustive ``match`` in the session state machine.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from wallet_cli.core.cancellation import CancellationToken
    from wallet_cli.core.protocols import AccountHandle


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Command:
    """Base class of every parsed command."""

    requires_account: ClassVar[bool] = False
    """Dispatch is rejected while no account is selected."""

    mutating: ClassVar[bool] = False
    """Dispatch is rejected while another mutating operation is in flight."""

    background: ClassVar[bool] = False
    """Runs as the session's in-flight operation instead of inline."""


@dataclass(frozen=True, slots=True)
class NoOp(Command):
    """Empty input line.  Discarded by the session."""


@dataclass(frozen=True, slots=True)
class Help(Command):
    pass


@dataclass(frozen=True, slots=True)
class Exit(Command):
    pass


@dataclass(frozen=True, slots=True)
class Cancel(Command):
    """Cancel the in-flight operation, if any."""


@dataclass(frozen=True, slots=True)
class ShowHistory(Command):
    pass


@dataclass(frozen=True, slots=True)
class ListAccounts(Command):
    pass


@dataclass(frozen=True, slots=True)
class SelectAccount(Command):
    mutating: ClassVar[bool] = True

    name: str


@dataclass(frozen=True, slots=True)
class CreateAccount(Command):
    mutating: ClassVar[bool] = True

    name: str


@dataclass(frozen=True, slots=True)
class DeleteAccount(Command):
    mutating: ClassVar[bool] = True

    name: str


@dataclass(frozen=True, slots=True)
class Balance(Command):
    requires_account: ClassVar[bool] = True


@dataclass(frozen=True, slots=True)
class NewAddress(Command):
    requires_account: ClassVar[bool] = True


@dataclass(frozen=True, slots=True)
class ListAddresses(Command):
    requires_account: ClassVar[bool] = True


@dataclass(frozen=True, slots=True)
class ListTransactions(Command):
    requires_account: ClassVar[bool] = True

    kind: str | None = None
    """One of ``received``, ``sent``, ``failed``, ``unconfirmed``, ``value``."""


@dataclass(frozen=True, slots=True)
class Sync(Command):
    requires_account: ClassVar[bool] = True
    mutating: ClassVar[bool] = True
    background: ClassVar[bool] = True

    gap_limit: int | None = None


@dataclass(frozen=True, slots=True)
class Send(Command):
    requires_account: ClassVar[bool] = True
    mutating: ClassVar[bool] = True
    background: ClassVar[bool] = True

    to: str
    amount: int
    metadata: str | None = None


@dataclass(frozen=True, slots=True)
class SetAlias(Command):
    requires_account: ClassVar[bool] = True
    mutating: ClassVar[bool] = True

    alias: str


@dataclass(frozen=True, slots=True)
class Retry(Command):
    """Send a failed transfer again, with a fresh device confirmation."""

    requires_account: ClassVar[bool] = True
    mutating: ClassVar[bool] = True
    background: ClassVar[bool] = True

    message_id: str


@dataclass(frozen=True, slots=True)
class Reattach(Command):
    requires_account: ClassVar[bool] = True
    mutating: ClassVar[bool] = True

    message_id: str


@dataclass(frozen=True, slots=True)
class Promote(Command):
    requires_account: ClassVar[bool] = True
    mutating: ClassVar[bool] = True

    message_id: str


COMMAND_TYPES: tuple[type[Command], ...] = (
    NoOp,
    Help,
    Exit,
    Cancel,
    ShowHistory,
    ListAccounts,
    SelectAccount,
    CreateAccount,
    DeleteAccount,
    Balance,
    NewAddress,
    ListAddresses,
    ListTransactions,
    Sync,
    Send,
    SetAlias,
    Retry,
    Reattach,
    Promote,
)


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

class OutcomeStatus(enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


class ErrorKind(enum.Enum):
    """Why a command failed.  Parse errors never reach an Outcome."""

    ENGINE = "engine"
    DEVICE = "device"
    BUSY = "busy"
    NO_ACCOUNT = "no_account"
    NO_OPERATION = "no_operation"
    ACCOUNT_NOT_FOUND = "account_not_found"


@dataclass(frozen=True, slots=True)
class Outcome:
    """Terminal result of dispatching a command."""

    status: OutcomeStatus
    payload: Any = None
    error_kind: ErrorKind | None = None
    message: str = ""

    @classmethod
    def success(cls, payload: Any = None, message: str = "") -> Outcome:
        return cls(OutcomeStatus.SUCCESS, payload=payload, message=message)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> Outcome:
        return cls(OutcomeStatus.FAILURE, error_kind=kind, message=message)

    @classmethod
    def cancelled(cls, message: str = "operation cancelled") -> Outcome:
        return cls(OutcomeStatus.CANCELLED, message=message)

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """One append-only record of a dispatched command."""

    sequence: int
    """1-based position in the session history."""

    command: Command
    outcome: Outcome

    background: bool = False
    """True for operations that ran as the session's in-flight task."""


# ---------------------------------------------------------------------------
# Device confirmation
# ---------------------------------------------------------------------------

class ConfirmationStatus(enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    TIMED_OUT = "timed out"
    DEVICE_ERROR = "device error"


@dataclass(frozen=True, slots=True)
class ConfirmationRequest:
    """What the signing device is asked to approve."""

    account_alias: str
    destination: str
    amount: int
    fee: int
    metadata: str | None = None

    @property
    def summary(self) -> str:
        """Human-readable line shown on the device and the terminal."""
        text = f"Send {self.amount} to {self.destination} (fee {self.fee}) from `{self.account_alias}`"
        if self.metadata:
            text += f" [tag: {self.metadata}]"
        return text


@dataclass(frozen=True, slots=True)
class ConfirmationResult:
    """Terminal device response to a :class:`ConfirmationRequest`."""

    status: ConfirmationStatus
    reason: str | None = None

    @classmethod
    def approved(cls) -> ConfirmationResult:
        return cls(ConfirmationStatus.APPROVED)

    @classmethod
    def rejected(cls) -> ConfirmationResult:
        return cls(ConfirmationStatus.REJECTED)

    @classmethod
    def timed_out(cls) -> ConfirmationResult:
        return cls(ConfirmationStatus.TIMED_OUT)

    @classmethod
    def device_error(cls, reason: str) -> ConfirmationResult:
        return cls(ConfirmationStatus.DEVICE_ERROR, reason=reason)

    @property
    def is_approved(self) -> bool:
        return self.status is ConfirmationStatus.APPROVED

    def describe(self) -> str:
        """Short failure text: ``rejected``, ``timed out`` or the device reason."""
        if self.status is ConfirmationStatus.DEVICE_ERROR and self.reason:
            return self.reason
        return self.status.value


# ---------------------------------------------------------------------------
# Operation
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Operation:
    """A request to the wallet engine produced from a command."""

    command: Command
    account: AccountHandle | None
    cancel: CancellationToken


# ---------------------------------------------------------------------------
# Wallet-engine value types
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class AccountBalance:
    total: int
    available: int

    @property
    def reserved(self) -> int:
        return self.total - self.available


@dataclass(frozen=True, slots=True)
class Address:
    address: str
    key_index: int
    internal: bool
    balance: int


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """Intermediate status of a long-running operation."""

    message: str
    current: int | None = None
    total: int | None = None


@dataclass(frozen=True, slots=True)
class SyncSummary:
    addresses: tuple[Address, ...]
    transactions: tuple[Transaction, ...]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """A prepared transfer whose funds the engine holds in reserve."""

    id: str
    account_id: str
    destination: str
    amount: int
    fee: int
    metadata: str | None = None
    retry_of: str | None = None
    """Id of the failed transaction this transfer sends again."""


@dataclass(frozen=True, slots=True)
class Transaction:
    id: str
    kind: str
    """``received``, ``sent`` or ``failed``."""

    value: int
    address: str
    timestamp: str
    confirmed: bool | None
    metadata: str | None = None


@dataclass(frozen=True, slots=True)
class Notification:
    title: str
    body: str
    success: bool
