"""Protocols (interfaces) consumed by the core layer.

These define the contracts that wallet engines, signing devices and
notification backends must satisfy.  Core code depends ONLY on these
protocols — never on concrete implementations — preserving the
dependency inversion principle.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Protocol

from wallet_cli.core.cancellation import CancellationToken
from wallet_cli.core.models import (
    AccountBalance,
    Address,
    ConfirmationResult,
    Notification,
    PendingTransaction,
    ProgressEvent,
    SyncSummary,
    Transaction,
)


class AccountHandle(Protocol):
    """Opaque reference to an account owned by the wallet engine.

    The core only reads the two identifying properties below; everything
    else is passed back to the engine untouched.
    """

    @property
    def id(self) -> str: ...  # pragma: no cover

    @property
    def alias(self) -> str: ...  # pragma: no cover


class WalletEngine(Protocol):
    """Contract for wallet-engine backends.

    Implementations must raise :class:`~wallet_cli.exceptions.EngineError`
    subclasses for every rejected operation.  Any other exception is
    treated by the executor as an unexpected engine failure.
    """

    async def list_accounts(self) -> Sequence[AccountHandle]: ...  # pragma: no cover

    async def create_account(self, name: str) -> AccountHandle:
        """Create an account.

        Raises
        ------
        AccountExistsError
            When *name* is already taken.
        """
        ...  # pragma: no cover

    async def select_account(self, name: str) -> AccountHandle:
        """Look an account up by alias.

        Raises
        ------
        AccountNotFoundError
            When no account carries *name*.
        """
        ...  # pragma: no cover

    async def delete_account(self, name: str) -> None: ...  # pragma: no cover

    async def set_alias(self, account: AccountHandle, alias: str) -> AccountHandle:
        """Rename *account* and return its refreshed handle.

        Raises
        ------
        AccountExistsError
            When another account already carries *alias*.
        """
        ...  # pragma: no cover

    async def get_balance(self, account: AccountHandle) -> AccountBalance: ...  # pragma: no cover

    async def new_address(self, account: AccountHandle) -> Address: ...  # pragma: no cover

    async def list_addresses(self, account: AccountHandle) -> Sequence[Address]: ...  # pragma: no cover

    async def list_transactions(
        self,
        account: AccountHandle,
        kind: str | None = None,
    ) -> Sequence[Transaction]: ...  # pragma: no cover

    def sync(
        self,
        account: AccountHandle,
        cancel: CancellationToken,
        *,
        gap_limit: int | None = None,
    ) -> AsyncIterator[ProgressEvent | SyncSummary]:
        """Synchronise *account* with the ledger.

        Yields :class:`ProgressEvent` items while working and exactly one
        :class:`SyncSummary` as the final item.  Implementations should
        check *cancel* between steps and stop early once it fires.
        """
        ...  # pragma: no cover

    async def prepare_send(
        self,
        account: AccountHandle,
        to: str,
        amount: int,
        metadata: str | None = None,
    ) -> PendingTransaction:
        """Build a transfer and reserve its funds until it is confirmed.

        Raises
        ------
        InsufficientFundsError
            When *amount* plus fee exceeds the available balance.
        """
        ...  # pragma: no cover

    async def prepare_retry(self, account: AccountHandle, message_id: str) -> PendingTransaction:
        """Reserve funds to send the failed transaction *message_id* again.

        *message_id* may be any unambiguous prefix of the id.  The result
        is finished with :meth:`confirm_and_broadcast` like a new transfer.

        Raises
        ------
        TransactionNotFoundError
            When no failed transaction of *account* matches *message_id*.
        InsufficientFundsError
            When the transfer no longer fits the available balance.
        """
        ...  # pragma: no cover

    async def confirm_and_broadcast(
        self,
        pending: PendingTransaction,
        result: ConfirmationResult,
    ) -> str | None:
        """Finish *pending* according to the device *result*.

        Returns the transaction id when *result* is approved and the
        transfer was broadcast.  For any other result the reservation is
        released and ``None`` is returned.
        """
        ...  # pragma: no cover

    async def reattach(self, account: AccountHandle, message_id: str) -> str:
        """Broadcast the unconfirmed transaction *message_id* again; return the new id."""
        ...  # pragma: no cover

    async def promote(self, account: AccountHandle, message_id: str) -> str:
        """Broadcast a message that helps *message_id* confirm; return its id."""
        ...  # pragma: no cover


class SigningDevice(Protocol):
    """Contract for hardware signing devices (or their simulators)."""

    async def request_confirmation(
        self,
        summary: str,
        timeout: float,
    ) -> ConfirmationResult:
        """Ask the user to approve *summary* on the device.

        Must be cancellable.  May raise
        :class:`~wallet_cli.exceptions.DeviceError` (or any exception)
        when the device is disconnected or crashes.
        """
        ...  # pragma: no cover


class Notifier(Protocol):
    """Contract for the best-effort desktop notification side channel."""

    def notify(self, notification: Notification) -> None: ...  # pragma: no cover
