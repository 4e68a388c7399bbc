"""Shared pytest fixtures and configuration for the wallet-cli test suite.

Guidelines
----------
* No network access and no real signing device in any test.
* Wallet engines and devices are faked at the protocol boundary.
* Core tests must be pure — no filesystem, no console output.
* Tests must not depend on OS state; storage lives under ``tmp_path``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass
from typing import Any

import pytest

from wallet_cli.core.cancellation import CancellationToken
from wallet_cli.core.confirmation import DeviceConfirmationBridge
from wallet_cli.core.executor import OperationExecutor
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
from wallet_cli.core.session import Session
from wallet_cli.exceptions import (
    AccountExistsError,
    AccountNotFoundError,
    TransactionNotFoundError,
)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FakeHandle:
    id: str
    alias: str


class FakeEngine:
    """In-memory :class:`WalletEngine` with hooks to stall or fail calls.

    ``sync_gate`` and ``prepare_gate`` are events the test sets to let a
    stalled sync step or ``prepare_send`` continue; ``broadcast_error`` makes
    ``confirm_and_broadcast`` fail.
    """

    def __init__(self, *aliases: str, balance: int = 100) -> None:
        self.accounts: dict[str, FakeHandle] = {
            alias: FakeHandle(id=f"id-{alias}", alias=alias) for alias in aliases
        }
        self.balance = balance
        self.fee = 1
        self.sync_steps = 2
        self.sync_gate: asyncio.Event | None = None
        self.prepare_gate: asyncio.Event | None = None
        self.calls: list[str] = []
        self.broadcasts: list[tuple[PendingTransaction, ConfirmationResult]] = []
        self.fail_with: Exception | None = None
        self.broadcast_error: Exception | None = None
        self.failed_ids: set[str] = {"fail1"}

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_with is not None:
            raise self.fail_with

    def _known(self, account: Any) -> FakeHandle:
        handle = self.accounts.get(account.alias)
        if handle is None:
            raise AccountNotFoundError(f"Account `{account.alias}` no longer exists")
        return handle

    async def list_accounts(self) -> list[FakeHandle]:
        self._check("list_accounts")
        return list(self.accounts.values())

    async def create_account(self, name: str) -> FakeHandle:
        self._check("create_account")
        if name in self.accounts:
            raise AccountExistsError(f"Account `{name}` already exists")
        self.accounts[name] = FakeHandle(id=f"id-{name}", alias=name)
        return self.accounts[name]

    async def select_account(self, name: str) -> FakeHandle:
        self._check("select_account")
        if name not in self.accounts:
            raise AccountNotFoundError(f"Account `{name}` not found")
        return self.accounts[name]

    async def delete_account(self, name: str) -> None:
        self._check("delete_account")
        if self.accounts.pop(name, None) is None:
            raise AccountNotFoundError(f"Account `{name}` not found")

    async def set_alias(self, account: Any, alias: str) -> FakeHandle:
        self._check("set_alias")
        handle = self._known(account)
        if alias in self.accounts:
            raise AccountExistsError(f"Account `{alias}` already exists")
        del self.accounts[handle.alias]
        self.accounts[alias] = FakeHandle(id=handle.id, alias=alias)
        return self.accounts[alias]

    async def get_balance(self, account: Any) -> AccountBalance:
        self._check("get_balance")
        self._known(account)
        return AccountBalance(total=self.balance, available=self.balance)

    async def new_address(self, account: Any) -> Address:
        self._check("new_address")
        self._known(account)
        return Address(address="wal1new", key_index=1, internal=False, balance=0)

    async def list_addresses(self, account: Any) -> list[Address]:
        self._check("list_addresses")
        self._known(account)
        return [Address(address="wal1first", key_index=0, internal=False, balance=self.balance)]

    async def list_transactions(self, account: Any, kind: str | None = None) -> list[Transaction]:
        self._check(f"list_transactions:{kind}")
        self._known(account)
        return []

    async def sync(
        self,
        account: Any,
        cancel: CancellationToken,
        *,
        gap_limit: int | None = None,
    ) -> AsyncIterator[ProgressEvent | SyncSummary]:
        self._check("sync")
        self._known(account)
        for step in range(1, self.sync_steps + 1):
            if self.sync_gate is not None:
                await self.sync_gate.wait()
            yield ProgressEvent(f"step {step}", step, self.sync_steps)
        yield SyncSummary(addresses=tuple(await self.list_addresses(account)), transactions=())

    async def prepare_send(
        self,
        account: Any,
        to: str,
        amount: int,
        metadata: str | None = None,
    ) -> PendingTransaction:
        self._check("prepare_send")
        self._known(account)
        if self.prepare_gate is not None:
            await self.prepare_gate.wait()
        return PendingTransaction(
            id="pending-1",
            account_id=account.id,
            destination=to,
            amount=amount,
            fee=self.fee,
            metadata=metadata,
        )

    async def confirm_and_broadcast(
        self,
        pending: PendingTransaction,
        result: ConfirmationResult,
    ) -> str | None:
        self.broadcasts.append((pending, result))
        if self.broadcast_error is not None:
            raise self.broadcast_error
        return "tx-1" if result.is_approved else None

    async def prepare_retry(self, account: Any, message_id: str) -> PendingTransaction:
        self._check("prepare_retry")
        self._known(account)
        if message_id not in self.failed_ids:
            raise TransactionNotFoundError(f"No failed transaction matches {message_id}")
        return PendingTransaction(
            id="pending-retry",
            account_id=account.id,
            destination="wal1old",
            amount=7,
            fee=self.fee,
            retry_of=message_id,
        )

    async def reattach(self, account: Any, message_id: str) -> str:
        self._check("reattach")
        self._known(account)
        return f"{message_id}-reattached"

    async def promote(self, account: Any, message_id: str) -> str:
        self._check("promote")
        self._known(account)
        return f"{message_id}-promoted"


class FakeDevice:
    """Signing device answering with *result* once *gate* is set (if any)."""

    def __init__(self, result: ConfirmationResult | None = None) -> None:
        self.result = result or ConfirmationResult.approved()
        self.gate: asyncio.Event | None = None
        self.error: Exception | None = None
        self.summaries: list[str] = []
        self.cancelled = False

    async def request_confirmation(self, summary: str, timeout: float) -> ConfirmationResult:
        self.summaries.append(summary)
        try:
            if self.gate is not None:
                await self.gate.wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.result


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.sent.append(notification)


async def settle() -> None:
    """Let every ready task on the loop run a few steps."""
    for _ in range(10):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    """Undo ``configure_logging`` so handlers never outlive captured streams."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("wallet_cli").setLevel(logging.NOTSET)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine("main", "savings")


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def session(engine: FakeEngine, device: FakeDevice, notifier: RecordingNotifier) -> Session:
    bridge = DeviceConfirmationBridge(device)
    executor = OperationExecutor(engine, bridge, confirmation_timeout=1.0)
    return Session(executor, notifier=notifier, shutdown_timeout=0.5)
