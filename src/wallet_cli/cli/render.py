"""Rendering of outcomes, errors and progress for the interactive session.

This module is responsible for:

* Turning each :class:`~wallet_cli.core.models.Outcome` into console
  output appropriate to the command that produced it.
* Rendering parse errors and failures as a single explanatory line.
* The "waiting for device confirmation" indicator.

All display-related logic lives here — no business logic, no engine
calls, no session mutation.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from wallet_cli.cli.console import console, escape_markup
from wallet_cli.core.models import (
    AccountBalance,
    Address,
    Balance,
    Cancel,
    Command,
    ConfirmationRequest,
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
    Notification,
    Outcome,
    OutcomeStatus,
    ProgressEvent,
    Promote,
    Reattach,
    Retry,
    SelectAccount,
    Send,
    SetAlias,
    ShowHistory,
    Sync,
    SyncSummary,
    Transaction,
)
from wallet_cli.exceptions import EnvironmentError, WalletCliError

HELP_ROWS: tuple[tuple[str, str], ...] = (
    ("accounts", "List the accounts in the wallet"),
    ("select [account] <name>", "Select the account to work with"),
    ("create [account] <name>", "Create a new account and select it"),
    ("delete [account] <name>", "Remove an account"),
    ("set-alias <alias>", "Rename the selected account"),
    ("balance", "Show the balance of the selected account"),
    ("address", "Generate a new receive address"),
    ("addresses", "List the addresses of the selected account"),
    ("transactions [type]", "List transactions (received, sent, failed, unconfirmed, value)"),
    ("sync [gap_limit]", "Synchronise the selected account"),
    ("send <address> <amount> [tag]", "Send funds; confirm on the signing device"),
    ("retry <message_id>", "Send a failed transfer again"),
    ("reattach <message_id>", "Broadcast an unconfirmed transfer again"),
    ("promote <message_id>", "Help an unconfirmed transfer confirm"),
    ("cancel", "Cancel the running send, retry or sync"),
    ("history", "Show the commands of this session"),
    ("help", "Show this help"),
    ("exit", "Leave the wallet"),
)

_ERROR_LABELS: dict[ErrorKind, str] = {
    ErrorKind.ENGINE: "Error",
    ErrorKind.DEVICE: "Device",
    ErrorKind.BUSY: "Busy",
    ErrorKind.NO_ACCOUNT: "Error",
    ErrorKind.NO_OPERATION: "Error",
    ErrorKind.ACCOUNT_NOT_FOUND: "Error",
}


def _import_rich_table() -> type[Any]:
    """Import rich table lazily for tabular rendering."""
    try:
        from rich.table import Table
    except ModuleNotFoundError as exc:
        raise EnvironmentError(
            "rich is not installed. Install with: pip install rich",
        ) from exc
    return Table


def _table(title: str | None, *columns: str) -> Any:
    table = _import_rich_table()(
        title=title,
        show_header=True,
        header_style="bold magenta",
        border_style="dim",
    )
    for column in columns:
        table.add_column(column)
    return table


# ---------------------------------------------------------------------------
# Presentation helpers (pure transforms — no I/O themselves)
# ---------------------------------------------------------------------------

def describe_command(command: Command) -> str:
    """Render *command* back into the words a user would type."""
    match command:
        case SelectAccount(name=name):
            return f"select {name}"
        case CreateAccount(name=name):
            return f"create {name}"
        case DeleteAccount(name=name):
            return f"delete {name}"
        case Send(to=to, amount=amount, metadata=metadata):
            return f"send {to} {amount}" + (f" {metadata}" if metadata else "")
        case Sync(gap_limit=gap_limit):
            return "sync" if gap_limit is None else f"sync {gap_limit}"
        case ListTransactions(kind=kind):
            return "transactions" if kind is None else f"transactions {kind}"
        case SetAlias(alias=alias):
            return f"set-alias {alias}"
        case Retry(message_id=message_id):
            return f"retry {message_id}"
        case Reattach(message_id=message_id):
            return f"reattach {message_id}"
        case Promote(message_id=message_id):
            return f"promote {message_id}"
        case _:
            return _SIMPLE_NAMES.get(type(command), type(command).__name__.lower())


_SIMPLE_NAMES: dict[type[Command], str] = {
    Help: "help",
    Exit: "exit",
    Cancel: "cancel",
    ShowHistory: "history",
    ListAccounts: "accounts",
    Balance: "balance",
    NewAddress: "address",
    ListAddresses: "addresses",
}


def format_confirmed(confirmed: bool | None) -> str:
    if confirmed is None:
        return "unknown"
    return "yes" if confirmed else "no"


def format_failure(outcome: Outcome) -> str:
    """Single-line markup for a failed or cancelled outcome."""
    if outcome.status is OutcomeStatus.CANCELLED:
        return f"[yellow]Cancelled:[/yellow] {escape_markup(outcome.message)}"
    label = _ERROR_LABELS.get(outcome.error_kind, "Error") if outcome.error_kind else "Error"
    return f"[bold red]{label}:[/bold red] {escape_markup(outcome.message)}"


# ---------------------------------------------------------------------------
# Payload renderers
# ---------------------------------------------------------------------------

def render_help() -> None:
    table = _table("Commands", "Command", "Description")
    for usage, description in HELP_ROWS:
        table.add_row(usage, description)
    console.print(table)


def render_accounts(accounts: Sequence[Any], current: Any | None = None) -> None:
    if not accounts:
        console.print("No accounts found. Create one with: [bold]create <name>[/bold]")
        return
    table = _table("Accounts", "", "Alias")
    for account in accounts:
        marker = "*" if current is not None and account.id == current.id else ""
        table.add_row(marker, escape_markup(account.alias))
    console.print(table)


def render_balance(balance: AccountBalance) -> None:
    console.print(f"Total balance: [bold]{balance.total}[/bold]")
    console.print(f"--- Available: {balance.available}")
    if balance.reserved:
        console.print(f"--- Reserved for pending transfers: {balance.reserved}")


def render_address(address: Address) -> None:
    console.print(f"ADDRESS [bold]{escape_markup(address.address)}[/bold]")
    console.print(f"--- Balance: {address.balance}")
    console.print(f"--- Index: {address.key_index}")
    console.print(f"--- Change address: {address.internal}")


def render_addresses(addresses: Sequence[Address]) -> None:
    if not addresses:
        console.print("No addresses found")
        return
    table = _table("Addresses", "Index", "Address", "Balance", "Change")
    for address in addresses:
        table.add_row(
            str(address.key_index),
            escape_markup(address.address),
            str(address.balance),
            "yes" if address.internal else "no",
        )
    console.print(table)


def render_transactions(transactions: Sequence[Transaction]) -> None:
    if not transactions:
        console.print("No transactions found")
        return
    table = _table("Transactions", "Id", "Type", "Value", "Address", "Timestamp", "Confirmed")
    for tx in transactions:
        table.add_row(
            tx.id[:16] + "…",
            tx.kind,
            str(tx.value),
            escape_markup(tx.address),
            tx.timestamp,
            format_confirmed(tx.confirmed),
        )
    console.print(table)


def render_history(entries: Sequence[HistoryEntry]) -> None:
    if not entries:
        console.print("No commands yet")
        return
    table = _table("History", "#", "Command", "Outcome", "Detail")
    for entry in entries:
        command = describe_command(entry.command)
        if entry.background:
            command += " (background)"
        detail = entry.outcome.message
        if entry.outcome.error_kind is not None:
            detail = f"{entry.outcome.error_kind.value}: {detail}"
        table.add_row(
            str(entry.sequence),
            escape_markup(command),
            entry.outcome.status.value,
            escape_markup(detail),
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def render_outcome(command: Command, outcome: Outcome, *, current: Any | None = None) -> None:
    """Render the outcome of *command* in the form the user expects."""
    if not outcome.ok:
        console.print(format_failure(outcome))
        return

    payload = outcome.payload
    match command:
        case Help():
            render_help()
        case ShowHistory():
            render_history(payload)
        case ListAccounts():
            render_accounts(payload, current)
        case SelectAccount():
            console.print(f"Selected account `[bold]{escape_markup(payload.alias)}[/bold]`")
        case Balance():
            render_balance(payload)
        case NewAddress():
            render_address(payload)
        case ListAddresses():
            render_addresses(payload)
        case ListTransactions():
            render_transactions(payload)
        case Sync():
            console.print(f"[bold green]{escape_markup(outcome.message)}[/bold green]")
            if isinstance(payload, SyncSummary):
                render_addresses(payload.addresses)
        case Send() | Retry():
            console.print(f"[bold green]{escape_markup(outcome.message)}[/bold green]")
            console.print(f"--- Transaction: {escape_markup(payload)}")
        case _:
            if outcome.message:
                console.print(escape_markup(outcome.message))


def render_completion(entry: HistoryEntry, *, current: Any | None = None) -> None:
    """Render a background operation that has just settled."""
    console.print(f"[dim]\\[{escape_markup(describe_command(entry.command))}][/dim]", end=" ")
    render_outcome(entry.command, entry.outcome, current=current)


def render_started(command: Command) -> None:
    console.print(f"[dim]Started {escape_markup(describe_command(command))} in the background.[/dim]")


def render_error(exc: WalletCliError) -> None:
    """Render a recoverable error and its hint."""
    console.print(f"[bold red]Error:[/bold red] {escape_markup(exc)}")
    if exc.hint:
        console.print(f"[yellow]Hint:[/yellow] {escape_markup(exc.hint)}")


def render_progress(event: ProgressEvent) -> None:
    console.print(f"[dim]  {escape_markup(event.message)}[/dim]")


def render_notification(notification: Notification) -> None:
    """Console fallback for desktop notifications."""
    style = "green" if notification.success else "red"
    console.print(f"[{style}]\\[{escape_markup(notification.title)}][/{style}] {escape_markup(notification.body)}")


class DeviceWaitingIndicator:
    """Context manager showing that the signing device awaits the user."""

    def __init__(self, request: ConfirmationRequest) -> None:
        self._request = request
        self.active: bool = False

    def __enter__(self) -> DeviceWaitingIndicator:
        self.active = True
        console.print(
            "[bold yellow]Waiting for device confirmation…[/bold yellow] "
            f"{escape_markup(self._request.summary)}",
        )
        return self

    def __exit__(self, *_args: object) -> None:
        self.active = False
        console.print("[dim]Device prompt closed.[/dim]")
