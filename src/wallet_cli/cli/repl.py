"""REPL loop — read a line, parse it, dispatch it, render the result.

The loop is the boundary for every recoverable error: parse errors and
failed outcomes are rendered as one line and the prompt comes back.
Only a broken input stream ends the process with a non-zero status
(:class:`~wallet_cli.exceptions.FatalIOError`).

End conditions
--------------
* ``exit`` — the in-flight operation is cancelled, then the loop ends.
* End of input — the in-flight operation is allowed to finish first.
* Ctrl+C — cancels a running operation, or exits when idle.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import IO, Any, Protocol

from wallet_cli.cli import exit_codes
from wallet_cli.cli.render import (
    describe_command,
    render_completion,
    render_error,
    render_outcome,
    render_started,
)
from wallet_cli.core.models import Cancel, Command, Exit, HistoryEntry, Outcome
from wallet_cli.core.parser import parse
from wallet_cli.core.session import Session, SessionState
from wallet_cli.exceptions import EnvironmentError, FatalIOError, ParseError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Input sources
# ---------------------------------------------------------------------------

class LineReader(Protocol):
    """Source of command lines.  ``None`` signals end of input."""

    async def read_line(self, prompt: str) -> str | None: ...  # pragma: no cover


class QuestionaryLineReader:
    """Interactive terminal input through a questionary text prompt.

    ``patch_stdout`` keeps output from background operations above the
    prompt instead of tearing through it.
    """

    def __init__(self) -> None:
        try:
            import questionary
        except ModuleNotFoundError as exc:
            raise EnvironmentError(
                "questionary is not installed. Install with: pip install questionary",
            ) from exc
        self._questionary: Any = questionary

    async def read_line(self, prompt: str) -> str | None:
        try:
            answer: str = await self._questionary.text(prompt, qmark="›").unsafe_ask_async(
                patch_stdout=True,
            )
        except EOFError:
            return None
        return answer


class StreamLineReader:
    """Line input from a plain stream, e.g. piped stdin."""

    def __init__(self, stream: IO[str] | None = None) -> None:
        self._stream: IO[str] = stream if stream is not None else sys.stdin

    async def read_line(self, prompt: str) -> str | None:
        loop = asyncio.get_running_loop()
        line = await loop.run_in_executor(None, self._stream.readline)
        if not line:
            return None
        return line.rstrip("\r\n")


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------

class Repl:
    """Drives a :class:`Session` from a :class:`LineReader`.

    Parameters
    ----------
    session:
        The session receiving parsed commands.
    reader:
        Source of input lines.
    """

    def __init__(self, session: Session, reader: LineReader) -> None:
        self._session = session
        self._reader = reader
        session.on_complete = self._on_complete

    def prompt(self) -> str:
        """Prompt text reflecting the selected account and in-flight work."""
        account = self._session.current_account
        text = "Wallet command" if account is None else f"Account `{account.alias}` command"
        in_flight = self._session.in_flight
        if in_flight is not None:
            text += f" [{describe_command(in_flight).split()[0]} running]"
        return f"{text} (h for help)"

    async def run(self) -> int:
        """Loop until ``exit`` or end of input.

        Returns
        -------
        int
            :data:`exit_codes.SUCCESS` on a graceful end.

        Raises
        ------
        FatalIOError
            When the input stream fails.
        """
        while self._session.state is not SessionState.TERMINATED:
            try:
                line = await self._reader.read_line(self.prompt())
            except KeyboardInterrupt:
                if self._session.busy:
                    await self.dispatch(Cancel())
                    continue
                line = "exit"
            except (OSError, ValueError) as exc:
                # ValueError covers undecodable bytes and a closed stream.
                await self._session.shutdown()
                raise FatalIOError(
                    f"Input stream failed: {exc}",
                    hint="The session was closed; restart the wallet to continue.",
                ) from exc

            if line is None:
                logger.debug("End of input")
                await self._session.wait_idle()
                await self.dispatch(Exit())
                break

            await self.handle_line(line)

        return exit_codes.SUCCESS

    async def handle_line(self, line: str) -> Outcome | None:
        """Parse and dispatch one line; render whatever comes back."""
        try:
            command = parse(line)
        except ParseError as exc:
            render_error(exc)
            return None
        return await self.dispatch(command)

    async def dispatch(self, command: Command) -> Outcome | None:
        outcome = await self._session.dispatch(command)
        if outcome is not None:
            render_outcome(command, outcome, current=self._session.current_account)
        elif command.background:
            render_started(command)
        return outcome

    def _on_complete(self, entry: HistoryEntry) -> None:
        render_completion(entry, current=self._session.current_account)
