"""Local simulated implementation of :class:`~wallet_cli.core.protocols.WalletEngine`.

Accounts, addresses and transactions live in a JSON document under the
configured database directory.  There is no cryptography and no network:
addresses are derived from a hash of the account id and key index, new
accounts are credited a configurable opening balance, and ``sync`` walks
the address list while confirming pending transactions.

Funds reserved by :meth:`LocalWalletEngine.prepare_send` are held in
memory only and released by :meth:`LocalWalletEngine.confirm_and_broadcast`.
A transfer that is not approved is recorded as a ``failed`` transaction,
which ``retry`` can send again.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from wallet_cli.core.cancellation import CancellationToken
from wallet_cli.core.models import (
    AccountBalance,
    Address,
    ConfirmationResult,
    PendingTransaction,
    ProgressEvent,
    SyncSummary,
    Transaction,
)
from wallet_cli.exceptions import (
    AccountExistsError,
    AccountNotFoundError,
    EngineError,
    InsufficientFundsError,
    TransactionNotFoundError,
)

logger = logging.getLogger(__name__)

STORAGE_FILENAME = "wallet.json"
ADDRESS_PREFIX = "wal1"


@dataclass(frozen=True, slots=True)
class LocalAccountHandle:
    """Handle returned for accounts of the local engine."""

    id: str
    alias: str


def derive_address(account_id: str, key_index: int, *, internal: bool = False) -> str:
    """Deterministic pseudo-address for *account_id* at *key_index*."""
    seed = f"{account_id}:{int(internal)}:{key_index}".encode()
    return ADDRESS_PREFIX + hashlib.sha256(seed).hexdigest()[:58]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class LocalWalletEngine:
    """Concrete :class:`WalletEngine` backed by a JSON file.

    This class satisfies the :class:`~wallet_cli.core.protocols.WalletEngine`
    protocol structurally — no explicit inheritance required.

    Parameters
    ----------
    storage_path:
        Directory holding ``wallet.json``.  Created on first write.
    initial_balance:
        Amount credited to the first address of every new account.
    fee:
        Flat fee charged per transfer.
    sync_step_delay:
        Seconds spent per address while syncing.
    """

    def __init__(
        self,
        storage_path: Path,
        *,
        initial_balance: int = 1_000_000,
        fee: int = 0,
        sync_step_delay: float = 0.2,
    ) -> None:
        self._file: Path = Path(storage_path) / STORAGE_FILENAME
        self._initial_balance = initial_balance
        self._fee = fee
        self._sync_step_delay = sync_step_delay
        self._accounts: dict[str, dict[str, Any]] | None = None
        self._handles: dict[str, LocalAccountHandle] = {}
        self._reserved: dict[str, PendingTransaction] = {}

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    @property
    def storage_file(self) -> Path:
        return self._file

    def _load(self) -> dict[str, dict[str, Any]]:
        if self._accounts is not None:
            return self._accounts
        if not self._file.exists():
            self._accounts = {}
            return self._accounts
        try:
            document = json.loads(self._file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise EngineError(
                f"Cannot read wallet database {self._file}: {exc}",
                hint="Check WALLET_DATABASE_PATH or move the damaged file away.",
            ) from exc
        self._accounts = dict(document.get("accounts", {}))
        return self._accounts

    def _save(self) -> None:
        accounts = self._load()
        try:
            self._file.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._file.with_suffix(".tmp")
            tmp.write_text(json.dumps({"accounts": accounts}, indent=2), encoding="utf-8")
            tmp.replace(self._file)
        except OSError as exc:
            raise EngineError(f"Cannot write wallet database {self._file}: {exc}") from exc

    def _handle(self, account_id: str) -> LocalAccountHandle:
        record = self._load()[account_id]
        handle = self._handles.get(account_id)
        if handle is None or handle.alias != record["alias"]:
            handle = LocalAccountHandle(id=account_id, alias=record["alias"])
            self._handles[account_id] = handle
        return handle

    def _record(self, account: Any) -> dict[str, Any]:
        record = self._load().get(account.id)
        if record is None:
            raise AccountNotFoundError(f"Account `{account.alias}` no longer exists")
        return record

    def _find(self, name: str) -> str:
        for account_id, record in self._load().items():
            if record["alias"] == name:
                return account_id
        raise AccountNotFoundError(f"Account `{name}` not found")

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def list_accounts(self) -> list[LocalAccountHandle]:
        accounts = self._load()
        ordered = sorted(accounts, key=lambda account_id: accounts[account_id]["index"])
        return [self._handle(account_id) for account_id in ordered]

    async def create_account(self, name: str) -> LocalAccountHandle:
        accounts = self._load()
        if any(record["alias"] == name for record in accounts.values()):
            raise AccountExistsError(f"Account `{name}` already exists")

        account_id = uuid.uuid4().hex
        first = derive_address(account_id, 0)
        record: dict[str, Any] = {
            "alias": name,
            "index": len(accounts),
            "created": _now(),
            "addresses": [
                {"address": first, "key_index": 0, "internal": False, "balance": self._initial_balance},
            ],
            "transactions": [],
        }
        if self._initial_balance:
            record["transactions"].append(
                self._transaction_record("received", self._initial_balance, first, confirmed=True),
            )
        accounts[account_id] = record
        self._save()
        logger.info("Created account %s", name)
        return self._handle(account_id)

    async def select_account(self, name: str) -> LocalAccountHandle:
        return self._handle(self._find(name))

    async def set_alias(self, account: Any, alias: str) -> LocalAccountHandle:
        record = self._record(account)
        if any(
            other["alias"] == alias
            for account_id, other in self._load().items()
            if account_id != account.id
        ):
            raise AccountExistsError(f"Account `{alias}` already exists")
        record["alias"] = alias
        self._save()
        logger.info("Renamed account %s to %s", account.alias, alias)
        return self._handle(account.id)

    async def delete_account(self, name: str) -> None:
        account_id = self._find(name)
        del self._load()[account_id]
        self._handles.pop(account_id, None)
        self._reserved = {
            key: pending for key, pending in self._reserved.items()
            if pending.account_id != account_id
        }
        self._save()
        logger.info("Deleted account %s", name)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_balance(self, account: Any) -> AccountBalance:
        record = self._record(account)
        total = sum(entry["balance"] for entry in record["addresses"])
        reserved = sum(
            pending.amount + pending.fee
            for pending in self._reserved.values()
            if pending.account_id == account.id
        )
        return AccountBalance(total=total, available=total - reserved)

    async def new_address(self, account: Any) -> Address:
        record = self._record(account)
        key_index = 1 + max(
            (entry["key_index"] for entry in record["addresses"] if not entry["internal"]),
            default=-1,
        )
        entry = {
            "address": derive_address(account.id, key_index),
            "key_index": key_index,
            "internal": False,
            "balance": 0,
        }
        record["addresses"].append(entry)
        self._save()
        return Address(**entry)

    async def list_addresses(self, account: Any) -> list[Address]:
        return [Address(**entry) for entry in self._record(account)["addresses"]]

    async def list_transactions(self, account: Any, kind: str | None = None) -> list[Transaction]:
        transactions = [Transaction(**entry) for entry in self._record(account)["transactions"]]
        if kind is None or kind == "value":
            return transactions
        if kind == "unconfirmed":
            return [tx for tx in transactions if tx.kind != "failed" and tx.confirmed is not True]
        return [tx for tx in transactions if tx.kind == kind]

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync(
        self,
        account: Any,
        cancel: CancellationToken,
        *,
        gap_limit: int | None = None,
    ) -> AsyncIterator[ProgressEvent | SyncSummary]:
        record = self._record(account)
        total = len(record["addresses"]) + (gap_limit or 0)

        for step in range(1, total + 1):
            if cancel.cancelled:
                logger.info("Sync of %s stopped at address %d of %d", account.alias, step, total)
                return
            await asyncio.sleep(self._sync_step_delay)
            yield ProgressEvent(f"syncing address {step} of {total}", step, total)

        # Re-read: the account may have been deleted while we slept.
        record = self._record(account)
        for entry in record["transactions"]:
            if entry["kind"] == "sent" and not entry["confirmed"]:
                entry["confirmed"] = True
        self._save()

        yield SyncSummary(
            addresses=tuple(Address(**entry) for entry in record["addresses"]),
            transactions=tuple(Transaction(**entry) for entry in record["transactions"]),
        )

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    async def prepare_send(
        self,
        account: Any,
        to: str,
        amount: int,
        metadata: str | None = None,
    ) -> PendingTransaction:
        if amount <= 0:
            raise EngineError("amount can't be zero")
        return await self._reserve(account, to, amount, metadata)

    async def prepare_retry(self, account: Any, message_id: str) -> PendingTransaction:
        entry = self._match(account, message_id, "failed")
        if any(pending.retry_of == entry["id"] for pending in self._reserved.values()):
            raise EngineError(f"Transaction {entry['id'][:16]} is already being retried")
        return await self._reserve(
            account,
            entry["address"],
            entry["value"],
            entry.get("metadata"),
            retry_of=entry["id"],
        )

    async def _reserve(
        self,
        account: Any,
        to: str,
        amount: int,
        metadata: str | None,
        *,
        retry_of: str | None = None,
    ) -> PendingTransaction:
        balance = await self.get_balance(account)
        if amount + self._fee > balance.available:
            raise InsufficientFundsError(
                f"Insufficient funds: {balance.available} available, "
                f"{amount + self._fee} required",
            )

        pending = PendingTransaction(
            id=uuid.uuid4().hex,
            account_id=account.id,
            destination=to,
            amount=amount,
            fee=self._fee,
            metadata=metadata,
            retry_of=retry_of,
        )
        self._reserved[pending.id] = pending
        logger.debug("Reserved %d for pending transfer %s", amount + self._fee, pending.id)
        return pending

    async def confirm_and_broadcast(
        self,
        pending: PendingTransaction,
        result: ConfirmationResult,
    ) -> str | None:
        if self._reserved.pop(pending.id, None) is None:
            raise EngineError(f"Unknown or already finished transfer {pending.id}")

        record = self._load().get(pending.account_id)
        if not result.is_approved:
            logger.info("Transfer %s aborted: %s", pending.id, result.describe())
            # A failed retry keeps its original failed entry.
            if record is not None and pending.retry_of is None:
                record["transactions"].append(
                    self._transaction_record(
                        "failed",
                        pending.amount,
                        pending.destination,
                        confirmed=False,
                        metadata=pending.metadata,
                    ),
                )
                self._save()
            return None

        if record is None:
            raise AccountNotFoundError("Account no longer exists")

        remaining = pending.amount + pending.fee
        for entry in record["addresses"]:
            spent = min(entry["balance"], remaining)
            entry["balance"] -= spent
            remaining -= spent
            if remaining == 0:
                break

        if pending.retry_of is not None:
            record["transactions"] = [
                entry for entry in record["transactions"] if entry["id"] != pending.retry_of
            ]
        tx = self._transaction_record(
            "sent", pending.amount, pending.destination, confirmed=False, metadata=pending.metadata,
        )
        record["transactions"].append(tx)
        self._save()
        return tx["id"]

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    async def reattach(self, account: Any, message_id: str) -> str:
        entry = self._unconfirmed(account, message_id)
        old_id = entry["id"]
        entry["id"] = self._transaction_record(
            "sent", entry["value"], entry["address"], confirmed=False,
        )["id"]
        entry["timestamp"] = _now()
        self._save()
        logger.info("Reattached %s as %s", old_id, entry["id"])
        return entry["id"]

    async def promote(self, account: Any, message_id: str) -> str:
        entry = self._unconfirmed(account, message_id)
        promotion = self._transaction_record("promotion", 0, entry["address"], confirmed=False)
        logger.info("Promoted %s with %s", entry["id"], promotion["id"])
        return promotion["id"]

    def _unconfirmed(self, account: Any, message_id: str) -> dict[str, Any]:
        entry = self._match(account, message_id, "sent")
        if entry["confirmed"]:
            raise EngineError(f"Transaction {entry['id'][:16]} is already confirmed")
        return entry

    def _match(self, account: Any, message_id: str, kind: str) -> dict[str, Any]:
        """Return the *kind* transaction whose id starts with *message_id*."""
        matches = [
            entry for entry in self._record(account)["transactions"]
            if entry["kind"] == kind and entry["id"].startswith(message_id)
        ]
        if not matches:
            raise TransactionNotFoundError(
                f"No {kind} transaction matches {message_id}",
                hint=f"List them with: transactions {kind}",
            )
        if len(matches) > 1:
            raise EngineError(
                f"Message id {message_id} is ambiguous ({len(matches)} matches)",
                hint="Type more characters of the id.",
            )
        return matches[0]

    @staticmethod
    def _transaction_record(
        kind: str,
        value: int,
        address: str,
        *,
        confirmed: bool,
        metadata: str | None = None,
    ) -> dict[str, Any]:
        timestamp = _now()
        digest = hashlib.sha256(f"{kind}:{value}:{address}:{uuid.uuid4().hex}".encode())
        return {
            "id": digest.hexdigest(),
            "kind": kind,
            "value": value,
            "address": address,
            "timestamp": timestamp,
            "confirmed": confirmed,
            "metadata": metadata,
        }
