"""CLI application entry point and bootstrap for wallet-cli.

This module is the **sole error boundary** for the entire application.
It catches :class:`~wallet_cli.exceptions.WalletCliError`,
``KeyboardInterrupt``, and any unexpected ``Exception``, rendering
user-friendly messages via Rich and returning well-defined exit codes.

Architecture notes
------------------
* No business logic lives here — the session, executor and bridge do
  the work; this module only wires them to concrete collaborators.
* ``print()`` is forbidden; Rich console is used exclusively.
* This module is the only place that translates between the domain world
  and the OS process exit code.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from wallet_cli.cli import exit_codes
from wallet_cli.cli.console import console, escape_markup
from wallet_cli.config.logging import configure_logging
from wallet_cli.config.settings import WalletSettings
from wallet_cli.core.models import SelectAccount
from wallet_cli.exceptions import FatalIOError, WalletCliError
from wallet_cli.version import __version__

if TYPE_CHECKING:
    from wallet_cli.cli.repl import Repl
    from wallet_cli.core.protocols import WalletEngine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    """Construct the top-level argument parser.

    The CLI supports:
    * ``wallet``           — interactive session
    * ``wallet doctor``    — environment diagnostics
    * ``wallet --version``
    """
    parser = argparse.ArgumentParser(
        prog="wallet",
        description="Command line interface for the wallet.",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "target",
        nargs="?",
        default=None,
        choices=["doctor"],
        help="'doctor' to run diagnostics; omit to start the interactive session.",
    )
    parser.add_argument(
        "-a",
        "--account",
        default=None,
        help="Alias of the account to select on start.",
    )
    parser.add_argument(
        "--database",
        type=Path,
        default=None,
        help="Wallet database directory (default: $WALLET_DATABASE_PATH or ./wallet-cli-database).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=None,
        help="Detailed logging output.",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        default=None,
        help="Emit log records as JSON lines.",
    )
    return parser


# ---------------------------------------------------------------------------
# Session bootstrap
# ---------------------------------------------------------------------------

async def _select_initial_account(
    repl: Repl,
    engine: WalletEngine,
    settings: WalletSettings,
    *,
    interactive: bool,
) -> None:
    """Select the starting account: named, the only one, or picked by the user."""
    from wallet_cli.cli.account_prompt import prompt_account_selection

    if settings.account is not None:
        await repl.dispatch(SelectAccount(settings.account))
        return

    accounts = await engine.list_accounts()
    aliases = [account.alias for account in accounts]
    if not aliases:
        console.print("No accounts yet. Create one with: [bold]create <name>[/bold]")
        return
    if len(aliases) == 1:
        await repl.dispatch(SelectAccount(aliases[0]))
        return
    if interactive:
        alias = await prompt_account_selection(aliases)
        if alias is not None:
            await repl.dispatch(SelectAccount(alias))


async def _run_session(settings: WalletSettings) -> int:
    """Wire the collaborators together and run the REPL.

    Flow:
    1. Instantiate infra collaborators (engine, device, notifier).
    2. Build the confirmation bridge, executor and session.
    3. Select the starting account.
    4. Loop on the prompt until ``exit`` or end of input.
    """
    from wallet_cli.cli.render import (
        DeviceWaitingIndicator,
        render_notification,
        render_progress,
    )
    from wallet_cli.cli.repl import QuestionaryLineReader, Repl, StreamLineReader
    from wallet_cli.core.confirmation import DeviceConfirmationBridge
    from wallet_cli.core.executor import OperationExecutor
    from wallet_cli.core.session import Session
    from wallet_cli.infra.device_simulator import SimulatedSigningDevice
    from wallet_cli.infra.local_engine import LocalWalletEngine
    from wallet_cli.infra.notifier import DesktopNotifier

    simulator = settings.simulator
    engine = LocalWalletEngine(
        settings.database_path,
        initial_balance=simulator.initial_balance,
        fee=simulator.fee,
        sync_step_delay=simulator.sync_step_delay,
    )
    device = SimulatedSigningDevice(simulator.device_response, delay=simulator.device_delay)
    bridge = DeviceConfirmationBridge(device, indicator=DeviceWaitingIndicator)
    executor = OperationExecutor(
        engine,
        bridge,
        confirmation_timeout=settings.confirmation_timeout,
        progress_callback=render_progress,
    )
    notifier = DesktopNotifier(fallback=render_notification) if settings.notifications else None
    session = Session(
        executor,
        notifier=notifier,
        shutdown_timeout=settings.shutdown_timeout,
    )

    interactive = sys.stdin.isatty()
    reader = QuestionaryLineReader() if interactive else StreamLineReader()
    repl = Repl(session, reader)

    logger.debug("Session started with database %s", settings.database_path)
    await _select_initial_account(repl, engine, settings, interactive=interactive)
    try:
        return await repl.run()
    finally:
        if notifier is not None:
            await notifier.drain()


def _handle_doctor(settings: WalletSettings) -> int:
    """Dispatch the ``doctor`` diagnostics command."""
    from wallet_cli.cli.doctor import run_doctor

    return run_doctor(settings)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    """Run the wallet CLI.

    Parameters
    ----------
    argv:
        Explicit argument list.  When ``None`` (default), ``sys.argv[1:]``
        is used.  Accepting *argv* enables deterministic testing without
        monkeypatching.

    Returns
    -------
    int
        OS process exit code.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = WalletSettings.from_cli(
        account=args.account,
        database_path=args.database,
        verbose=args.verbose,
        log_json=args.log_json,
    )
    configure_logging(verbose=settings.verbose, log_json=settings.log_json)

    if args.target == "doctor":
        return _handle_doctor(settings)

    return asyncio.run(_run_session(settings))


# ---------------------------------------------------------------------------
# Script-level error boundary
# ---------------------------------------------------------------------------

def cli() -> None:
    """Top-level error boundary invoked by the console-script entry point.

    This function wraps :func:`main` and guarantees the process never
    exits with a raw stack trace during normal usage.
    """
    try:
        code = main()
        sys.exit(code)
    except FatalIOError as exc:
        console.print(f"[bold red]Fatal:[/bold red] {escape_markup(exc)}")
        if exc.hint:
            console.print(f"[yellow]Hint:[/yellow] {escape_markup(exc.hint)}")
        sys.exit(exit_codes.FATAL_IO_ERROR)
    except WalletCliError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape_markup(exc)}")
        if exc.hint:
            console.print(f"[yellow]Hint:[/yellow] {escape_markup(exc.hint)}")
        sys.exit(exit_codes.GENERAL_ERROR)
    except KeyboardInterrupt:
        console.print("\n[yellow]Aborted by user.[/yellow]")
        sys.exit(exit_codes.KEYBOARD_INTERRUPT)
    except Exception as exc:  # noqa: BLE001
        console.print(
            "[bold red]Unexpected error.[/bold red] "
            "Please report this issue.\n"
            f"  {type(exc).__name__}: {escape_markup(exc)}"
        )
        sys.exit(exit_codes.UNEXPECTED_ERROR)
