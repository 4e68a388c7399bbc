"""Session state machine — turns parsed commands into operations.

States
------
``IDLE``        no account selected
``READY``       account selected, nothing in flight
``BUSY``        a mutating background operation (send, retry, sync) is in flight
``TERMINATED``  ``exit`` was dispatched

Rules
-----
* At most one mutating operation is in flight.  Every mutating command
  arriving while ``BUSY`` is rejected with ``Failure(BUSY)`` and never
  reaches the executor.
* Read-only commands run inline, also while ``BUSY``.
* Every dispatched command appends exactly one :class:`HistoryEntry`;
  background operations append theirs when they settle.  ``NoOp`` is
  discarded without a trace.
* ``exit`` cancels the in-flight operation and waits for it to settle,
  bounded by the shutdown timeout.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections.abc import Callable

from wallet_cli.core.cancellation import CancellationToken
from wallet_cli.core.executor import OperationExecutor
from wallet_cli.core.models import (
    Balance,
    Cancel,
    Command,
    CreateAccount,
    DeleteAccount,
    ErrorKind,
    Exit,
    Help,
    HistoryEntry,
    ListAccounts,
    ListAddresses,
    ListTransactions,
    NewAddress,
    NoOp,
    Notification,
    Operation,
    Outcome,
    OutcomeStatus,
    Promote,
    Reattach,
    Retry,
    SelectAccount,
    Send,
    SetAlias,
    ShowHistory,
    Sync,
)
from wallet_cli.core.protocols import AccountHandle, Notifier
from wallet_cli.exceptions import WalletCliError

logger = logging.getLogger(__name__)

NOTIFICATION_TITLE = "CLI Wallet"

CompletionListener = Callable[[HistoryEntry], None]


class SessionState(enum.Enum):
    IDLE = "idle"
    READY = "ready"
    BUSY = "busy"
    TERMINATED = "terminated"


class Session:
    """Mutable state of one interactive run.

    Parameters
    ----------
    executor:
        Executor used for every wallet-engine operation.
    notifier:
        Optional desktop notification side channel for send/sync results.
    shutdown_timeout:
        Seconds ``exit`` waits for a cancelled operation to settle.
    on_complete:
        Called with the history entry of every background operation
        once it settles.
    """

    def __init__(
        self,
        executor: OperationExecutor,
        *,
        notifier: Notifier | None = None,
        shutdown_timeout: float = 5.0,
        on_complete: CompletionListener | None = None,
    ) -> None:
        self._executor = executor
        self._notifier = notifier
        self._shutdown_timeout = shutdown_timeout
        self.on_complete: CompletionListener | None = on_complete

        self._current_account: AccountHandle | None = None
        self._history: list[HistoryEntry] = []
        self._in_flight: Operation | None = None
        self._task: asyncio.Task[None] | None = None
        self._terminated = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def current_account(self) -> AccountHandle | None:
        return self._current_account

    @property
    def busy(self) -> bool:
        return self._in_flight is not None

    @property
    def in_flight(self) -> Command | None:
        return self._in_flight.command if self._in_flight is not None else None

    @property
    def history(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._history)

    @property
    def state(self) -> SessionState:
        if self._terminated:
            return SessionState.TERMINATED
        if self.busy:
            return SessionState.BUSY
        if self._current_account is None:
            return SessionState.IDLE
        return SessionState.READY

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, command: Command) -> Outcome | None:
        """Validate *command* against the current state and run it.

        Returns the outcome of inline commands, or ``None`` when the
        command was discarded (``NoOp``) or started in the background.

        Raises
        ------
        WalletCliError
            If the session has already terminated.
        """
        if self._terminated:
            raise WalletCliError("The session has ended.")

        if isinstance(command, NoOp):
            return None

        if command.mutating and self.busy:
            pending = type(self.in_flight).__name__.lower()
            return self._reply(
                command,
                Outcome.failure(ErrorKind.BUSY, f"operation in progress ({pending})"),
            )
        if command.requires_account and self._current_account is None:
            return self._reply(
                command,
                Outcome.failure(ErrorKind.NO_ACCOUNT, "no account selected"),
            )

        match command:
            case Help():
                return self._reply(command, Outcome.success())
            case ShowHistory():
                return self._reply(command, Outcome.success(self.history))
            case Exit():
                await self.shutdown()
                self._terminated = True
                return self._reply(command, Outcome.success(message="Goodbye"))
            case Cancel():
                return self._reply(command, self._cancel_in_flight())
            case SelectAccount() | CreateAccount() | SetAlias():
                outcome = await self._run_inline(command)
                if outcome.ok:
                    self._current_account = outcome.payload
                return self._reply(command, outcome)
            case DeleteAccount(name=name):
                outcome = await self._run_inline(command)
                if outcome.ok and self._is_current(name):
                    self._current_account = None
                return self._reply(command, outcome)
            case ListAccounts() | Balance() | NewAddress() | ListAddresses() | ListTransactions():
                return self._reply(command, await self._run_inline(command))
            case Reattach() | Promote():
                return self._reply(command, await self._run_inline(command))
            case Sync() | Send() | Retry():
                self._start_background(command)
                return None
            case _:
                raise TypeError(f"Unhandled command: {type(command).__name__}")

    async def shutdown(self) -> None:
        """Cancel the in-flight operation and wait for it to settle.

        Waits at most ``shutdown_timeout`` for cooperative cancellation,
        then cancels the task outright.  The operation's history entry is
        recorded as ``Cancelled`` even if the task never returns.
        """
        operation, task = self._in_flight, self._task
        if operation is None or task is None:
            return

        operation.cancel.cancel()
        done, _ = await asyncio.wait({task}, timeout=self._shutdown_timeout)
        if done:
            return

        logger.warning("Operation did not stop within %.1fs; aborting", self._shutdown_timeout)
        task.cancel()
        await asyncio.wait({task}, timeout=self._shutdown_timeout)
        if self._in_flight is operation:
            self._settle(operation, Outcome.cancelled("operation aborted at shutdown"))

    async def wait_idle(self) -> None:
        """Wait until no background operation is in flight."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _run_inline(self, command: Command) -> Outcome:
        operation = Operation(command, self._current_account, CancellationToken())
        outcome = await self._executor.execute(operation)
        self._forget_missing_account(operation, outcome)
        return outcome

    def _start_background(self, command: Command) -> None:
        operation = Operation(command, self._current_account, CancellationToken())
        self._in_flight = operation
        self._task = asyncio.create_task(
            self._run_background(operation),
            name=f"wallet-{type(command).__name__.lower()}",
        )
        logger.debug("Started background %s", type(command).__name__)

    async def _run_background(self, operation: Operation) -> None:
        try:
            outcome = await self._executor.execute(operation)
        except asyncio.CancelledError:
            self._settle(operation, Outcome.cancelled("operation aborted"))
            raise
        except Exception as exc:
            logger.exception("Executor failure")
            outcome = Outcome.failure(ErrorKind.ENGINE, f"Unexpected error: {exc}")
        self._settle(operation, outcome)

    def _settle(self, operation: Operation, outcome: Outcome) -> None:
        """Record the terminal outcome of a background operation once."""
        if self._in_flight is not operation:
            return
        self._in_flight = None
        self._task = None

        self._forget_missing_account(operation, outcome)
        entry = self._record(operation.command, outcome, background=True)
        self._notify(operation, outcome)

        if self.on_complete is not None:
            try:
                self.on_complete(entry)
            except Exception:
                logger.exception("Completion listener failed")

    def _cancel_in_flight(self) -> Outcome:
        if self._in_flight is None:
            return Outcome.failure(ErrorKind.NO_OPERATION, "no operation in progress")
        self._in_flight.cancel.cancel()
        return Outcome.success(message="Cancellation requested")

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _reply(self, command: Command, outcome: Outcome) -> Outcome:
        self._record(command, outcome, background=False)
        return outcome

    def _record(self, command: Command, outcome: Outcome, *, background: bool) -> HistoryEntry:
        entry = HistoryEntry(
            sequence=len(self._history) + 1,
            command=command,
            outcome=outcome,
            background=background,
        )
        self._history.append(entry)
        return entry

    def _is_current(self, name: str) -> bool:
        return self._current_account is not None and self._current_account.alias == name

    def _forget_missing_account(self, operation: Operation, outcome: Outcome) -> None:
        """Drop the handle of an account the engine no longer knows."""
        if outcome.error_kind is not ErrorKind.ACCOUNT_NOT_FOUND:
            return
        if operation.account is not None and operation.account is self._current_account:
            logger.info("Selected account `%s` was removed", operation.account.alias)
            self._current_account = None

    def _notify(self, operation: Operation, outcome: Outcome) -> None:
        if self._notifier is None or operation.account is None:
            return
        alias = operation.account.alias
        match operation.command:
            case Send(to=to, amount=amount):
                action = f"Transfer of {amount} to {to}"
            case Retry(message_id=message_id):
                action = f"Retry of {message_id}"
            case Sync():
                action = "Sync"
            case _:
                return

        if outcome.status is OutcomeStatus.SUCCESS:
            body = f"{action} completed on `{alias}`"
        elif outcome.status is OutcomeStatus.CANCELLED:
            body = f"{action} cancelled on `{alias}`"
        else:
            body = f"{action} failed on `{alias}`: {outcome.message}"

        try:
            self._notifier.notify(
                Notification(title=NOTIFICATION_TITLE, body=body, success=outcome.ok),
            )
        except Exception:
            logger.debug("Notification delivery failed", exc_info=True)
