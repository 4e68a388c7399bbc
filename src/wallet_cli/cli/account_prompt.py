"""Interactive account selection for the start of a session.

This module is responsible for:

* Prompting the user to pick an account via questionary arrow keys.
* Returning the chosen alias, or ``None`` when the user backs out.

All display-related logic lives here — no business logic, no engine
calls.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from wallet_cli.exceptions import EnvironmentError


def _import_questionary() -> Any:
    """Import questionary lazily for interactive selection."""
    try:
        import questionary
    except ModuleNotFoundError as exc:
        raise EnvironmentError(
            "questionary is not installed. Install with: pip install questionary",
        ) from exc
    return questionary


def _build_choice_label(index: int, alias: str) -> str:
    """Build the single-line label shown in the questionary selector.

    Format: ``"  1.  main"``
    """
    return f"  {index + 1}.  {alias}"


async def prompt_account_selection(aliases: Sequence[str]) -> str | None:
    """Prompt the user to pick one of *aliases*.

    Returns
    -------
    str | None
        The chosen alias, or ``None`` if the prompt was dismissed
        (Esc / Ctrl+C).
    """
    if not aliases:
        return None

    questionary = _import_questionary()
    choices = [
        questionary.Choice(title=_build_choice_label(i, alias), value=alias)
        for i, alias in enumerate(aliases)
    ]
    selected: str | None = await questionary.select(
        "Select an account to manipulate",
        choices=choices,
        default=choices[0],
        use_arrow_keys=True,
        use_shortcuts=False,
    ).ask_async()
    return selected
