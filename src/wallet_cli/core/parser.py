"""Pure command parsing: one line of user input → one :class:`Command`.

Every function in this module is a **pure** transformation — no I/O,
no session access, no wallet-engine calls.  Errors are raised as
:class:`~wallet_cli.exceptions.ParseError` subclasses.
"""

from __future__ import annotations

import shlex
from collections.abc import Callable, Sequence

from wallet_cli.core.models import (
    Balance,
    Cancel,
    Command,
    CreateAccount,
    DeleteAccount,
    Exit,
    Help,
    ListAccounts,
    ListAddresses,
    ListTransactions,
    NewAddress,
    NoOp,
    Promote,
    Reattach,
    Retry,
    SelectAccount,
    Send,
    SetAlias,
    ShowHistory,
    Sync,
)
from wallet_cli.exceptions import InvalidArgumentError, UnknownCommandError

TRANSACTION_KINDS: tuple[str, ...] = ("received", "sent", "failed", "unconfirmed", "value")


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------

def _expect_at_most(args: Sequence[str], count: int, usage: str) -> None:
    if len(args) > count:
        raise InvalidArgumentError(
            "arguments",
            f"expected at most {count}, got {len(args)}",
            hint=f"Usage: {usage}",
        )


def _parse_positive_int(raw: str, field: str, *, zero_reason: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise InvalidArgumentError(field, f"{field} must be a number") from None
    if value == 0:
        raise InvalidArgumentError(field, zero_reason)
    if value < 0:
        raise InvalidArgumentError(field, f"{field} must be positive")
    return value


def _parse_address(raw: str) -> str:
    if not raw:
        raise InvalidArgumentError("address", "address must not be empty")
    if not raw.isalnum():
        raise InvalidArgumentError(
            "address",
            f"'{raw}' is not a valid address",
            hint="Addresses are bech32 strings of letters and digits.",
        )
    return raw


def _parse_message_id(args: Sequence[str], usage: str) -> str:
    if not args:
        raise InvalidArgumentError("message_id", "a message id is required", hint=f"Usage: {usage}")
    _expect_at_most(args, 1, usage)
    message_id = args[0]
    if not message_id.isalnum():
        raise InvalidArgumentError(
            "message_id",
            f"'{message_id}' is not a valid message id",
            hint="Copy the id from the output of: transactions",
        )
    return message_id.lower()


def _account_name(args: Sequence[str], usage: str) -> str:
    """Accept both ``select main`` and ``select account main``."""
    if len(args) == 2 and args[0].lower() == "account":
        args = args[1:]
    if not args:
        raise InvalidArgumentError("name", "an account name is required", hint=f"Usage: {usage}")
    _expect_at_most(args, 1, usage)
    name = args[0].strip()
    if not name:
        raise InvalidArgumentError("name", "account name must not be empty")
    return name


# ---------------------------------------------------------------------------
# Per-command parsers
# ---------------------------------------------------------------------------

def _no_args(command: Command, usage: str) -> Callable[[Sequence[str]], Command]:
    def parse_args(args: Sequence[str]) -> Command:
        _expect_at_most(args, 0, usage)
        return command

    return parse_args


def _parse_select(args: Sequence[str]) -> Command:
    return SelectAccount(_account_name(args, "select [account] <name>"))


def _parse_create(args: Sequence[str]) -> Command:
    return CreateAccount(_account_name(args, "create [account] <name>"))


def _parse_delete(args: Sequence[str]) -> Command:
    return DeleteAccount(_account_name(args, "delete [account] <name>"))


def _parse_set_alias(args: Sequence[str]) -> Command:
    usage = "set-alias <alias>"
    if not args:
        raise InvalidArgumentError("alias", "an alias is required", hint=f"Usage: {usage}")
    _expect_at_most(args, 1, usage)
    alias = args[0].strip()
    if not alias:
        raise InvalidArgumentError("alias", "alias must not be empty")
    return SetAlias(alias)


def _parse_sync(args: Sequence[str]) -> Command:
    _expect_at_most(args, 1, "sync [gap_limit]")
    if not args:
        return Sync()
    gap_limit = _parse_positive_int(args[0], "gap_limit", zero_reason="gap limit can't be zero")
    return Sync(gap_limit=gap_limit)


def _parse_send(args: Sequence[str]) -> Command:
    usage = "send <address> <amount> [tag]"
    if len(args) < 2:
        missing = "address" if not args else "amount"
        raise InvalidArgumentError(missing, f"{missing} is required", hint=f"Usage: {usage}")
    _expect_at_most(args, 3, usage)
    address = _parse_address(args[0])
    amount = _parse_positive_int(args[1], "amount", zero_reason="amount can't be zero")
    metadata = args[2] if len(args) == 3 else None
    return Send(to=address, amount=amount, metadata=metadata)


def _parse_transactions(args: Sequence[str]) -> Command:
    usage = f"transactions [{'|'.join(TRANSACTION_KINDS)}]"
    _expect_at_most(args, 1, usage)
    if not args:
        return ListTransactions()
    kind = args[0].lower()
    if kind not in TRANSACTION_KINDS:
        raise InvalidArgumentError(
            "kind",
            f"unexpected transaction type '{args[0]}'",
            hint=f"Usage: {usage}",
        )
    return ListTransactions(kind=kind)


def _parse_retry(args: Sequence[str]) -> Command:
    return Retry(_parse_message_id(args, "retry <message_id>"))


def _parse_reattach(args: Sequence[str]) -> Command:
    return Reattach(_parse_message_id(args, "reattach <message_id>"))


def _parse_promote(args: Sequence[str]) -> Command:
    return Promote(_parse_message_id(args, "promote <message_id>"))


_PARSERS: dict[str, Callable[[Sequence[str]], Command]] = {
    "help": _no_args(Help(), "help"),
    "h": _no_args(Help(), "help"),
    "?": _no_args(Help(), "help"),
    "exit": _no_args(Exit(), "exit"),
    "quit": _no_args(Exit(), "exit"),
    "cancel": _no_args(Cancel(), "cancel"),
    "history": _no_args(ShowHistory(), "history"),
    "accounts": _no_args(ListAccounts(), "accounts"),
    "select": _parse_select,
    "account": _parse_select,
    "create": _parse_create,
    "new": _parse_create,
    "delete": _parse_delete,
    "balance": _no_args(Balance(), "balance"),
    "address": _no_args(NewAddress(), "address"),
    "addresses": _no_args(ListAddresses(), "addresses"),
    "list-addresses": _no_args(ListAddresses(), "addresses"),
    "sync": _parse_sync,
    "send": _parse_send,
    "transfer": _parse_send,
    "transactions": _parse_transactions,
    "list-messages": _parse_transactions,
    "set-alias": _parse_set_alias,
    "retry": _parse_retry,
    "reattach": _parse_reattach,
    "promote": _parse_promote,
}

COMMAND_NAMES: tuple[str, ...] = tuple(sorted(_PARSERS))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse(line: str) -> Command:
    """Parse one line of user input.

    Returns :class:`NoOp` for blank input.

    Raises
    ------
    UnknownCommandError
        If the first token is not a known command.
    InvalidArgumentError
        On wrong arity, malformed arguments or unbalanced quotes.
    """
    try:
        tokens = shlex.split(line)
    except ValueError as exc:
        raise InvalidArgumentError("line", str(exc).lower()) from exc

    if not tokens:
        return NoOp()

    name, args = tokens[0].lower(), tokens[1:]
    parser = _PARSERS.get(name)
    if parser is None:
        raise UnknownCommandError(tokens[0])
    return parser(args)
