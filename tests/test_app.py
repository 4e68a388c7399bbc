"""Tests for session bootstrap in cli/app.py.

Coverage:
* The starting account is the named one, the only one, or the user's pick.
* An empty wallet starts without a selection and prints a hint.
* ``_run_session`` wires the real collaborators and runs piped input.
"""

from __future__ import annotations

import io
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from conftest import FakeDevice, FakeEngine
from wallet_cli.cli import exit_codes
from wallet_cli.cli.app import _run_session, _select_initial_account
from wallet_cli.cli.repl import Repl, StreamLineReader
from wallet_cli.config.settings import SimulatorConfig, WalletSettings
from wallet_cli.core.confirmation import DeviceConfirmationBridge
from wallet_cli.core.executor import OperationExecutor
from wallet_cli.core.session import Session, SessionState


def _repl(session: Session) -> Repl:
    return Repl(session, StreamLineReader(io.StringIO("")))


def _settings(tmp_path: Path, **overrides: object) -> WalletSettings:
    return WalletSettings(
        database_path=tmp_path,
        notifications=False,
        simulator=SimulatorConfig(sync_step_delay=0, device_delay=0),
        **overrides,  # type: ignore[arg-type]
    )


# ---------------------------------------------------------------------------
# Initial account
# ---------------------------------------------------------------------------

class TestSelectInitialAccount:
    @pytest.mark.asyncio
    async def test_named_account(self, session: Session, engine: FakeEngine, tmp_path: Path) -> None:
        settings = _settings(tmp_path, account="savings")
        await _select_initial_account(_repl(session), engine, settings, interactive=False)
        assert session.current_account is not None
        assert session.current_account.alias == "savings"

    @pytest.mark.asyncio
    async def test_single_account_auto_selected(self, tmp_path: Path) -> None:
        engine = FakeEngine("only")
        session = Session(OperationExecutor(engine, DeviceConfirmationBridge(FakeDevice())))
        await _select_initial_account(_repl(session), engine, _settings(tmp_path), interactive=False)
        assert session.current_account is not None
        assert session.current_account.alias == "only"

    @pytest.mark.asyncio
    async def test_several_accounts_non_interactive(
        self, session: Session, engine: FakeEngine, tmp_path: Path,
    ) -> None:
        await _select_initial_account(_repl(session), engine, _settings(tmp_path), interactive=False)
        assert session.state is SessionState.IDLE

    @pytest.mark.asyncio
    async def test_several_accounts_prompted(
        self, session: Session, engine: FakeEngine, tmp_path: Path,
    ) -> None:
        with patch(
            "wallet_cli.cli.account_prompt.prompt_account_selection",
            new=AsyncMock(return_value="savings"),
        ) as mock_prompt:
            await _select_initial_account(_repl(session), engine, _settings(tmp_path), interactive=True)

        mock_prompt.assert_awaited_once_with(["main", "savings"])
        assert session.current_account is not None
        assert session.current_account.alias == "savings"

    @pytest.mark.asyncio
    async def test_empty_wallet_hint(
        self, session: Session, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        await _select_initial_account(_repl(session), FakeEngine(), _settings(tmp_path), interactive=False)
        assert session.state is SessionState.IDLE
        assert "No accounts yet" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# End to end with the bundled simulators
# ---------------------------------------------------------------------------

class TestRunSession:
    @pytest.mark.asyncio
    async def test_piped_session(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        script = "create main\nbalance\nsend wal1abc 10\n"
        monkeypatch.setattr("sys.stdin", io.StringIO(script))

        code = await _run_session(_settings(tmp_path))

        assert code == exit_codes.SUCCESS
        err = capsys.readouterr().err
        assert "Created account `main`" in err
        assert "Total balance: 1000000" in err
        assert "Sent 10 to wal1abc" in err
        assert (tmp_path / "wallet.json").exists()
