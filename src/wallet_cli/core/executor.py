"""Core operation executor — one command, one wallet-engine call, one Outcome.

The executor is the safe boundary between the session and its external
collaborators.  It is responsible for:

* Translating a validated command into wallet-engine calls.
* Driving the device confirmation step of signing operations.
* Honouring the cancellation token at every suspension point.
* Mapping every engine or device failure to a :class:`Outcome`.

Guarantees
----------
* :meth:`OperationExecutor.execute` never raises for engine or device
  failures and never retries.
* No ``Success`` outcome for a send exists without an ``APPROVED``
  confirmation result.
* Progress events are best effort; a failing sink never affects the
  final outcome.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any

from wallet_cli.core.cancellation import CancellationToken
from wallet_cli.core.confirmation import DeviceConfirmationBridge
from wallet_cli.core.models import (
    Balance,
    ConfirmationRequest,
    ConfirmationResult,
    CreateAccount,
    DeleteAccount,
    ErrorKind,
    ListAccounts,
    ListAddresses,
    ListTransactions,
    NewAddress,
    Operation,
    Outcome,
    PendingTransaction,
    ProgressEvent,
    Promote,
    Reattach,
    Retry,
    SelectAccount,
    Send,
    SetAlias,
    Sync,
    SyncSummary,
)
from wallet_cli.core.protocols import AccountHandle, WalletEngine
from wallet_cli.exceptions import (
    AccountNotFoundError,
    ConfirmationInProgressError,
    OperationCancelled,
    WalletCliError,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class OperationExecutor:
    """Runs operations against a wallet engine.

    Parameters
    ----------
    engine:
        Any object satisfying the :class:`WalletEngine` protocol.
    bridge:
        The device confirmation bridge used by signing operations.
    confirmation_timeout:
        Seconds the device is given to answer a confirmation request.
    progress_callback:
        Optional callable receiving :class:`ProgressEvent` items.
    """

    def __init__(
        self,
        engine: WalletEngine,
        bridge: DeviceConfirmationBridge,
        *,
        confirmation_timeout: float = 60.0,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self._engine: WalletEngine = engine
        self._bridge: DeviceConfirmationBridge = bridge
        self._confirmation_timeout: float = confirmation_timeout
        self._progress_callback: ProgressCallback | None = progress_callback

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(
        self,
        operation: Operation,
        cancel: CancellationToken | None = None,
    ) -> Outcome:
        """Run *operation* to completion and return its outcome.

        *cancel* defaults to the token carried by the operation.
        """
        token = cancel or operation.cancel
        command = operation.command
        try:
            return await self._dispatch(operation, token)
        except OperationCancelled:
            logger.info("Operation cancelled: %s", type(command).__name__)
            return Outcome.cancelled()
        except AccountNotFoundError as exc:
            return Outcome.failure(ErrorKind.ACCOUNT_NOT_FOUND, str(exc))
        except ConfirmationInProgressError as exc:
            logger.error("Overlapping device confirmation refused: %s", exc)
            return Outcome.failure(ErrorKind.DEVICE, str(exc))
        except WalletCliError as exc:
            return Outcome.failure(ErrorKind.ENGINE, str(exc))
        except Exception as exc:
            logger.exception("Unexpected engine error during %s", type(command).__name__)
            return Outcome.failure(
                ErrorKind.ENGINE,
                f"Unexpected engine error: {type(exc).__name__}: {exc}",
            )

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _dispatch(self, operation: Operation, token: CancellationToken) -> Outcome:
        engine = self._engine
        command = operation.command

        match command:
            case ListAccounts():
                accounts = await token.guard(engine.list_accounts())
                return Outcome.success(tuple(accounts))
            case SelectAccount(name=name):
                return Outcome.success(await token.guard(engine.select_account(name)))
            case CreateAccount(name=name):
                account = await token.guard(engine.create_account(name))
                return Outcome.success(account, message=f"Created account `{account.alias}`")
            case DeleteAccount(name=name):
                await token.guard(engine.delete_account(name))
                return Outcome.success(name, message="Account removed")
            case Balance():
                account = self._require_account(operation)
                return Outcome.success(await token.guard(engine.get_balance(account)))
            case NewAddress():
                account = self._require_account(operation)
                return Outcome.success(await token.guard(engine.new_address(account)))
            case ListAddresses():
                account = self._require_account(operation)
                addresses = await token.guard(engine.list_addresses(account))
                return Outcome.success(tuple(addresses))
            case ListTransactions(kind=kind):
                account = self._require_account(operation)
                transactions = await token.guard(engine.list_transactions(account, kind))
                return Outcome.success(tuple(transactions))
            case Sync():
                return await self._sync(self._require_account(operation), command, token)
            case Send():
                return await self._send(self._require_account(operation), command, token)
            case Retry():
                return await self._retry(self._require_account(operation), command, token)
            case SetAlias(alias=alias):
                account = self._require_account(operation)
                renamed = await token.guard(engine.set_alias(account, alias))
                return Outcome.success(renamed, message=f"Account renamed to `{renamed.alias}`")
            case Reattach(message_id=message_id):
                account = self._require_account(operation)
                new_id = await token.guard(engine.reattach(account, message_id))
                return Outcome.success(new_id, message=f"Reattached {message_id} as {new_id}")
            case Promote(message_id=message_id):
                account = self._require_account(operation)
                new_id = await token.guard(engine.promote(account, message_id))
                return Outcome.success(new_id, message=f"Promoted {message_id} with {new_id}")
            case _:
                raise TypeError(f"{type(command).__name__} is not an engine operation")

    @staticmethod
    def _require_account(operation: Operation) -> AccountHandle:
        if operation.account is None:
            raise TypeError(f"{type(operation.command).__name__} needs an account")
        return operation.account

    # ------------------------------------------------------------------
    # Long-running: sync
    # ------------------------------------------------------------------

    async def _sync(
        self,
        account: AccountHandle,
        command: Sync,
        token: CancellationToken,
    ) -> Outcome:
        if command.gap_limit is not None:
            self._report(ProgressEvent(f"Syncing with gap limit {command.gap_limit}"))

        stream: Any = self._engine.sync(account, token, gap_limit=command.gap_limit)
        summary: SyncSummary | None = None
        try:
            while True:
                token.raise_if_cancelled()
                try:
                    item = await token.guard(stream.__anext__())
                except StopAsyncIteration:
                    break
                if isinstance(item, SyncSummary):
                    summary = item
                else:
                    self._report(item)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                # A force-cancelled step may still be running inside the stream.
                with contextlib.suppress(RuntimeError):
                    await aclose()

        # Engines may end the stream early once the token fires.
        token.raise_if_cancelled()
        if summary is None:
            return Outcome.failure(ErrorKind.ENGINE, "sync ended without a summary")
        return Outcome.success(
            summary,
            message=f"Synchronized `{account.alias}`: {len(summary.addresses)} addresses",
        )

    def _report(self, event: ProgressEvent) -> None:
        """Forward *event* to the progress sink; failures are dropped."""
        if self._progress_callback is None:
            return
        try:
            self._progress_callback(event)
        except Exception:
            logger.debug("Progress event dropped: %s", event.message, exc_info=True)

    # ------------------------------------------------------------------
    # Signing: send and retry
    # ------------------------------------------------------------------

    async def _send(
        self,
        account: AccountHandle,
        command: Send,
        token: CancellationToken,
    ) -> Outcome:
        pending = await token.guard(
            self._engine.prepare_send(account, command.to, command.amount, command.metadata),
        )
        return await self._sign(account, pending, token)

    async def _retry(
        self,
        account: AccountHandle,
        command: Retry,
        token: CancellationToken,
    ) -> Outcome:
        pending = await token.guard(self._engine.prepare_retry(account, command.message_id))
        return await self._sign(account, pending, token)

    async def _sign(
        self,
        account: AccountHandle,
        pending: PendingTransaction,
        token: CancellationToken,
    ) -> Outcome:
        """Confirm *pending* on the device, then broadcast or release it."""
        request = ConfirmationRequest(
            account_alias=account.alias,
            destination=pending.destination,
            amount=pending.amount,
            fee=pending.fee,
            metadata=pending.metadata,
        )

        try:
            result = await token.guard(
                self._bridge.confirm(request, self._confirmation_timeout),
            )
        except (OperationCancelled, ConfirmationInProgressError, asyncio.CancelledError) as exc:
            # The reservation must be released before the failure surfaces.
            await self._release(pending, str(exc) or "operation aborted")
            raise

        tx_id = await self._engine.confirm_and_broadcast(pending, result)
        if not result.is_approved:
            return Outcome.failure(ErrorKind.DEVICE, result.describe())
        if tx_id is None:
            return Outcome.failure(ErrorKind.ENGINE, "transaction was not broadcast")
        return Outcome.success(tx_id, message=f"Sent {pending.amount} to {pending.destination}")

    async def _release(self, pending: PendingTransaction, reason: str) -> None:
        """Hand the engine a failed result so it drops the reservation."""
        try:
            await self._engine.confirm_and_broadcast(
                pending, ConfirmationResult.device_error(reason),
            )
        except Exception:
            logger.exception("Could not release the reservation of transfer %s", pending.id)
