"""``wallet doctor`` — environment diagnostics command.

Gathers system information and renders a Rich table summarising
whether the runtime environment satisfies wallet-cli's requirements.

This module lives in the CLI layer — it may import from ``infra``
and ``config``, and it renders via Rich.  No business logic resides
here; it purely collects and displays diagnostic data.
"""

from __future__ import annotations

import os
import platform
import sys
from importlib import metadata
from pathlib import Path

from wallet_cli.cli import exit_codes
from wallet_cli.cli.console import console
from wallet_cli.config.settings import WalletSettings
from wallet_cli.infra.notifier import NotifierStatus, detect_notifier
from wallet_cli.version import __version__

NOTIFIER_INSTALL_HINTS: dict[str, tuple[str, ...]] = {
    "notify-send": (
        "sudo apt install libnotify-bin",
        "sudo dnf install libnotify",
        "sudo pacman -S libnotify",
    ),
}


# ---------------------------------------------------------------------------
# Diagnostic collectors
# ---------------------------------------------------------------------------

def _python_version_check() -> tuple[str, str, str]:
    """Return (label, value, status) for the Python version row."""
    version = platform.python_version()
    ok = sys.version_info[:2] >= (3, 10)
    status = "[green]OK[/green]" if ok else "[red]FAIL (>=3.10 required)[/red]"
    return "Python", version, status


def _package_version_check(distribution: str) -> tuple[str, str, str]:
    """Return (label, value, status) for an installed dependency."""
    try:
        return distribution, metadata.version(distribution), "[green]OK[/green]"
    except metadata.PackageNotFoundError:
        return distribution, "NOT INSTALLED", "[red]FAIL[/red]"


def _notifier_check(status_obj: NotifierStatus) -> tuple[str, str, str]:
    """Return (label, value, status) for the desktop notification row."""
    if status_obj.found:
        return "notifications", str(status_obj.path), "[green]OK[/green]"
    value = f"{status_obj.command} not found" if status_obj.command else "unsupported platform"
    return "notifications", value, "[yellow]WARN[/yellow]"


def _storage_check(database_path: Path) -> tuple[str, str, str]:
    """Return (label, value, status) for the wallet database directory."""
    path = database_path.resolve()
    if path.is_dir():
        ok = os.access(path, os.W_OK)
        status = "[green]OK[/green]" if ok else "[red]FAIL (not writable)[/red]"
        return "database", str(path), status
    if path.exists():
        return "database", str(path), "[red]FAIL (not a directory)[/red]"
    return "database", f"{path} (new)", "[green]OK[/green]"


def _os_check() -> tuple[str, str, str]:
    """Return (label, value, status) for the OS row."""
    system_raw = platform.system()
    system_display = {
        "Windows": "Windows",
        "Linux": "Linux",
        "Darwin": "macOS",
    }.get(system_raw, system_raw)
    value = f"{system_display} {platform.release()} ({platform.machine()})"
    return "OS", value, "[green]OK[/green]"


def _status_plain(status: str) -> str:
    """Convert rich-markup status to plain text."""
    if "FAIL" in status:
        return "FAIL"
    if "WARN" in status:
        return "WARN"
    if "OK" in status:
        return "OK"
    return status


def _print_plain_doctor_table(checks: list[tuple[str, str, str]]) -> None:
    """Render doctor output without Rich."""
    print("\nwallet doctor", file=sys.stderr)
    print("=" * 64, file=sys.stderr)
    print(f"{'Component':<14} {'Value':<40} {'Status':<8}", file=sys.stderr)
    print("-" * 64, file=sys.stderr)
    for label, value, status in checks:
        print(f"{label:<14} {value:<40} {_status_plain(status):<8}", file=sys.stderr)
    print(file=sys.stderr)


def collect_checks(settings: WalletSettings, notifier: NotifierStatus) -> list[tuple[str, str, str]]:
    return [
        ("wallet-cli", __version__, "[green]OK[/green]"),
        _python_version_check(),
        _package_version_check("rich"),
        _package_version_check("questionary"),
        _package_version_check("structlog"),
        _package_version_check("pydantic-settings"),
        _notifier_check(notifier),
        _storage_check(settings.database_path),
        _os_check(),
    ]


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def run_doctor(settings: WalletSettings) -> int:
    """Execute all diagnostic checks and render a Rich summary table.

    Returns
    -------
    int
        :data:`exit_codes.SUCCESS` when all critical checks pass,
        :data:`exit_codes.GENERAL_ERROR` if a critical check fails.
    """
    notifier = detect_notifier()
    checks = collect_checks(settings, notifier)
    has_failure = any("FAIL" in status for _, _, status in checks)

    rich_available = True
    try:
        from rich.table import Table
    except ModuleNotFoundError:
        rich_available = False

    if rich_available:
        table = Table(
            title="wallet doctor",
            show_header=True,
            header_style="bold cyan",
            border_style="dim",
        )
        table.add_column("Component", style="bold", min_width=12)
        table.add_column("Value", min_width=20)
        table.add_column("Status", justify="center", min_width=8)
        for label, value, status in checks:
            table.add_row(label, value, status)

        console.print()
        console.print(table)
        console.print()
    else:
        _print_plain_doctor_table(checks)

    # Results fall back to the console when no notifier is present.
    install_commands = NOTIFIER_INSTALL_HINTS.get(notifier.command, ())
    if not notifier.found and install_commands:
        lines = [
            "Desktop notifications are unavailable; results are printed instead.",
            "Install using one of the following commands:\n",
            *(f"  {cmd}" for cmd in install_commands),
            "",
        ]
        for line in lines:
            if rich_available:
                console.print(line)
            else:
                print(line, file=sys.stderr)

    message = "Some checks failed." if has_failure else "All checks passed."
    if rich_available:
        style = "bold red" if has_failure else "bold green"
        console.print(f"[{style}]{message}[/{style}]")
    else:
        print(message, file=sys.stderr)
    return exit_codes.GENERAL_ERROR if has_failure else exit_codes.SUCCESS
