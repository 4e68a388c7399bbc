"""Tests for the operation executor (core/executor.py).

Coverage:
* Read operations return their payload.
* Engine failures map to ``Failure`` outcomes and are never raised.
* Sync streams progress and ends with its summary; cancellation wins.
* Send goes through device confirmation; reservations are always released.
* Retry signs again on the device; reattach, promote and set-alias are inline.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from conftest import FakeDevice, FakeEngine, FakeHandle
from wallet_cli.core.cancellation import CancellationToken
from wallet_cli.core.confirmation import DeviceConfirmationBridge
from wallet_cli.core.executor import OperationExecutor
from wallet_cli.core.models import (
    Balance,
    ConfirmationResult,
    ConfirmationStatus,
    CreateAccount,
    ErrorKind,
    ListAccounts,
    ListTransactions,
    Operation,
    OutcomeStatus,
    ProgressEvent,
    Promote,
    Reattach,
    Retry,
    Send,
    SetAlias,
    Sync,
    SyncSummary,
)
from wallet_cli.exceptions import EngineError, InsufficientFundsError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _executor(
    engine: FakeEngine,
    device: FakeDevice | None = None,
    *,
    events: list[ProgressEvent] | None = None,
    timeout: float = 1.0,
) -> OperationExecutor:
    bridge = DeviceConfirmationBridge(device or FakeDevice())
    callback = events.append if events is not None else None
    return OperationExecutor(
        engine,
        bridge,
        confirmation_timeout=timeout,
        progress_callback=callback,
    )


def _op(command: Any, account: FakeHandle | None = None) -> Operation:
    return Operation(command, account, CancellationToken())


# ---------------------------------------------------------------------------
# Inline operations
# ---------------------------------------------------------------------------

class TestInline:
    @pytest.mark.asyncio
    async def test_list_accounts(self, engine: FakeEngine) -> None:
        outcome = await _executor(engine).execute(_op(ListAccounts()))
        assert outcome.ok
        assert [a.alias for a in outcome.payload] == ["main", "savings"]

    @pytest.mark.asyncio
    async def test_balance(self, engine: FakeEngine) -> None:
        outcome = await _executor(engine).execute(_op(Balance(), engine.accounts["main"]))
        assert outcome.ok
        assert outcome.payload.total == 100

    @pytest.mark.asyncio
    async def test_transactions_kind_forwarded(self, engine: FakeEngine) -> None:
        outcome = await _executor(engine).execute(
            _op(ListTransactions(kind="sent"), engine.accounts["main"]),
        )
        assert outcome.ok
        assert "list_transactions:sent" in engine.calls

    @pytest.mark.asyncio
    async def test_create_message(self, engine: FakeEngine) -> None:
        outcome = await _executor(engine).execute(_op(CreateAccount("travel")))
        assert outcome.ok
        assert outcome.message == "Created account `travel`"

    @pytest.mark.asyncio
    async def test_duplicate_account_is_engine_failure(self, engine: FakeEngine) -> None:
        outcome = await _executor(engine).execute(_op(CreateAccount("main")))
        assert outcome.status is OutcomeStatus.FAILURE
        assert outcome.error_kind is ErrorKind.ENGINE

    @pytest.mark.asyncio
    async def test_missing_account_kind(self, engine: FakeEngine) -> None:
        ghost = FakeHandle(id="id-ghost", alias="ghost")
        outcome = await _executor(engine).execute(_op(Balance(), ghost))
        assert outcome.error_kind is ErrorKind.ACCOUNT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_engine_failure(self, engine: FakeEngine) -> None:
        engine.fail_with = KeyError("boom")
        outcome = await _executor(engine).execute(_op(ListAccounts()))
        assert outcome.error_kind is ErrorKind.ENGINE
        assert outcome.message.startswith("Unexpected engine error")

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, engine: FakeEngine) -> None:
        operation = _op(ListAccounts())
        operation.cancel.cancel()
        outcome = await _executor(engine).execute(operation)
        assert outcome.status is OutcomeStatus.CANCELLED
        assert engine.calls == []


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------

class TestSync:
    @pytest.mark.asyncio
    async def test_progress_then_summary(self, engine: FakeEngine) -> None:
        events: list[ProgressEvent] = []
        outcome = await _executor(engine, events=events).execute(
            _op(Sync(), engine.accounts["main"]),
        )
        assert outcome.ok
        assert isinstance(outcome.payload, SyncSummary)
        assert [e.message for e in events] == ["step 1", "step 2"]
        assert outcome.message == "Synchronized `main`: 1 addresses"

    @pytest.mark.asyncio
    async def test_gap_limit_reported(self, engine: FakeEngine) -> None:
        events: list[ProgressEvent] = []
        await _executor(engine, events=events).execute(
            _op(Sync(gap_limit=5), engine.accounts["main"]),
        )
        assert events[0].message == "Syncing with gap limit 5"

    @pytest.mark.asyncio
    async def test_failing_progress_sink_ignored(self, engine: FakeEngine) -> None:
        def explode(_event: ProgressEvent) -> None:
            raise RuntimeError("terminal gone")

        executor = OperationExecutor(
            engine,
            DeviceConfirmationBridge(FakeDevice()),
            progress_callback=explode,
        )
        outcome = await executor.execute(_op(Sync(), engine.accounts["main"]))
        assert outcome.ok

    @pytest.mark.asyncio
    async def test_cancel_mid_sync(self, engine: FakeEngine) -> None:
        engine.sync_gate = asyncio.Event()
        operation = _op(Sync(), engine.accounts["main"])
        task = asyncio.create_task(_executor(engine).execute(operation))
        await asyncio.sleep(0.01)

        operation.cancel.cancel()
        outcome = await asyncio.wait_for(task, timeout=1.0)
        assert outcome.status is OutcomeStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_stream_without_summary_fails(self, engine: FakeEngine) -> None:
        class NoSummaryEngine(FakeEngine):
            async def sync(self, account: Any, cancel: CancellationToken, *, gap_limit: int | None = None):  # type: ignore[override]
                yield ProgressEvent("only progress")

        engine = NoSummaryEngine("main")
        outcome = await _executor(engine).execute(_op(Sync(), engine.accounts["main"]))
        assert outcome.error_kind is ErrorKind.ENGINE


# ---------------------------------------------------------------------------
# Send
# ---------------------------------------------------------------------------

class TestSend:
    @pytest.mark.asyncio
    async def test_approved_send(self, engine: FakeEngine) -> None:
        outcome = await _executor(engine).execute(
            _op(Send(to="wal1abc", amount=10), engine.accounts["main"]),
        )
        assert outcome.ok
        assert outcome.payload == "tx-1"
        assert outcome.message == "Sent 10 to wal1abc"

    @pytest.mark.asyncio
    async def test_device_sees_summary(self, engine: FakeEngine) -> None:
        device = FakeDevice()
        await _executor(engine, device).execute(
            _op(Send(to="wal1abc", amount=10, metadata="rent"), engine.accounts["main"]),
        )
        assert device.summaries == [
            "Send 10 to wal1abc (fee 1) from `main` [tag: rent]",
        ]

    @pytest.mark.asyncio
    async def test_rejected_send(self, engine: FakeEngine) -> None:
        device = FakeDevice(ConfirmationResult.rejected())
        outcome = await _executor(engine, device).execute(
            _op(Send(to="wal1abc", amount=10), engine.accounts["main"]),
        )
        assert outcome.error_kind is ErrorKind.DEVICE
        assert outcome.message == "rejected"
        assert engine.broadcasts[0][1].status is ConfirmationStatus.REJECTED

    @pytest.mark.asyncio
    async def test_timed_out_send(self, engine: FakeEngine) -> None:
        device = FakeDevice()
        device.gate = asyncio.Event()
        outcome = await _executor(engine, device, timeout=0.01).execute(
            _op(Send(to="wal1abc", amount=10), engine.accounts["main"]),
        )
        assert outcome.error_kind is ErrorKind.DEVICE
        assert outcome.message == "timed out"

    @pytest.mark.asyncio
    async def test_insufficient_funds_never_reaches_device(self, engine: FakeEngine) -> None:
        engine.fail_with = InsufficientFundsError("Insufficient funds")
        device = FakeDevice()
        outcome = await _executor(engine, device).execute(
            _op(Send(to="wal1abc", amount=10), engine.accounts["main"]),
        )
        assert outcome.error_kind is ErrorKind.ENGINE
        assert device.summaries == []

    @pytest.mark.asyncio
    async def test_cancel_during_confirmation_releases_funds(self, engine: FakeEngine) -> None:
        device = FakeDevice()
        device.gate = asyncio.Event()
        operation = _op(Send(to="wal1abc", amount=10), engine.accounts["main"])
        task = asyncio.create_task(_executor(engine, device).execute(operation))
        await asyncio.sleep(0.01)

        operation.cancel.cancel()
        outcome = await asyncio.wait_for(task, timeout=1.0)

        assert outcome.status is OutcomeStatus.CANCELLED
        assert len(engine.broadcasts) == 1
        assert not engine.broadcasts[0][1].is_approved

    @pytest.mark.asyncio
    async def test_overlapping_confirmation_releases_funds(self, engine: FakeEngine) -> None:
        device = FakeDevice()
        device.gate = asyncio.Event()
        executor = _executor(engine, device)
        account = engine.accounts["main"]

        first = asyncio.create_task(executor.execute(_op(Send(to="wal1abc", amount=1), account)))
        await asyncio.sleep(0.01)
        second = await executor.execute(_op(Send(to="wal1abc", amount=2), account))

        assert second.error_kind is ErrorKind.DEVICE
        assert engine.broadcasts[0][0].amount == 2

        device.gate.set()
        assert (await first).ok

    @pytest.mark.asyncio
    async def test_broadcast_failure_is_engine_failure(self, engine: FakeEngine) -> None:
        async def broken(pending: Any, result: Any) -> str | None:
            raise EngineError("node unreachable")

        engine.confirm_and_broadcast = broken  # type: ignore[method-assign]
        outcome = await _executor(engine).execute(
            _op(Send(to="wal1abc", amount=10), engine.accounts["main"]),
        )
        assert outcome.error_kind is ErrorKind.ENGINE
        assert outcome.message == "node unreachable"

    @pytest.mark.asyncio
    async def test_cancel_survives_failed_release(self, engine: FakeEngine) -> None:
        engine.broadcast_error = EngineError("node unreachable")
        device = FakeDevice()
        device.gate = asyncio.Event()
        operation = _op(Send(to="wal1abc", amount=10), engine.accounts["main"])
        task = asyncio.create_task(_executor(engine, device).execute(operation))
        await asyncio.sleep(0.01)

        operation.cancel.cancel()
        outcome = await asyncio.wait_for(task, timeout=1.0)

        assert outcome.status is OutcomeStatus.CANCELLED
        assert len(engine.broadcasts) == 1

    @pytest.mark.asyncio
    async def test_task_cancel_during_confirmation_releases_funds(self, engine: FakeEngine) -> None:
        device = FakeDevice()
        device.gate = asyncio.Event()
        operation = _op(Send(to="wal1abc", amount=10), engine.accounts["main"])
        task = asyncio.create_task(_executor(engine, device).execute(operation))
        await asyncio.sleep(0.01)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0.01)

        assert len(engine.broadcasts) == 1
        assert engine.broadcasts[0][1].status is ConfirmationStatus.DEVICE_ERROR
        assert device.cancelled


# ---------------------------------------------------------------------------
# Retry and replay
# ---------------------------------------------------------------------------

class TestRetry:
    @pytest.mark.asyncio
    async def test_retry_goes_through_device(self, engine: FakeEngine) -> None:
        device = FakeDevice()
        outcome = await _executor(engine, device).execute(
            _op(Retry("fail1"), engine.accounts["main"]),
        )
        assert outcome.ok
        assert outcome.message == "Sent 7 to wal1old"
        assert device.summaries == ["Send 7 to wal1old (fee 1) from `main`"]
        assert engine.broadcasts[0][0].retry_of == "fail1"

    @pytest.mark.asyncio
    async def test_rejected_retry(self, engine: FakeEngine) -> None:
        device = FakeDevice(ConfirmationResult.rejected())
        outcome = await _executor(engine, device).execute(
            _op(Retry("fail1"), engine.accounts["main"]),
        )
        assert outcome.error_kind is ErrorKind.DEVICE
        assert not engine.broadcasts[0][1].is_approved

    @pytest.mark.asyncio
    async def test_unknown_message_never_reaches_device(self, engine: FakeEngine) -> None:
        device = FakeDevice()
        outcome = await _executor(engine, device).execute(
            _op(Retry("nope"), engine.accounts["main"]),
        )
        assert outcome.error_kind is ErrorKind.ENGINE
        assert outcome.message == "No failed transaction matches nope"
        assert device.summaries == []


class TestReplay:
    @pytest.mark.asyncio
    async def test_reattach(self, engine: FakeEngine) -> None:
        outcome = await _executor(engine).execute(_op(Reattach("abc"), engine.accounts["main"]))
        assert outcome.payload == "abc-reattached"
        assert outcome.message == "Reattached abc as abc-reattached"

    @pytest.mark.asyncio
    async def test_promote(self, engine: FakeEngine) -> None:
        outcome = await _executor(engine).execute(_op(Promote("abc"), engine.accounts["main"]))
        assert outcome.payload == "abc-promoted"
        assert engine.calls == ["promote"]


class TestSetAlias:
    @pytest.mark.asyncio
    async def test_returns_refreshed_handle(self, engine: FakeEngine) -> None:
        outcome = await _executor(engine).execute(
            _op(SetAlias("daily"), engine.accounts["main"]),
        )
        assert outcome.payload == FakeHandle(id="id-main", alias="daily")
        assert outcome.message == "Account renamed to `daily`"

    @pytest.mark.asyncio
    async def test_taken_alias(self, engine: FakeEngine) -> None:
        outcome = await _executor(engine).execute(
            _op(SetAlias("savings"), engine.accounts["main"]),
        )
        assert outcome.error_kind is ErrorKind.ENGINE
        assert outcome.message == "Account `savings` already exists"
