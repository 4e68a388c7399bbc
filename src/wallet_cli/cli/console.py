"""CLI console helpers backed by Rich.

This module intentionally avoids module-level imports of UI
dependencies so bootstrap paths (``--help``, ``--version``) remain
functional even when Rich fails to import.
"""

from __future__ import annotations

from typing import Any

from wallet_cli.exceptions import EnvironmentError


def _load_rich_console_class() -> type[Any]:
	"""Return ``rich.console.Console`` class or raise ``EnvironmentError``."""
	try:
		from rich.console import Console
	except ModuleNotFoundError as exc:
		raise EnvironmentError(
			"rich is not installed. Install with: pip install rich",
		) from exc
	return Console


def get_rich_console() -> Any:
	"""Create a Rich console instance targeting stderr."""
	console_class = _load_rich_console_class()
	return console_class(stderr=True, highlight=False)


class _ConsoleProxy:
	"""Minimal ``print``-compatible proxy resolving the Rich console lazily.

	A fresh console is created per call so output always lands on the
	current ``sys.stderr`` (prompt_toolkit swaps it while a prompt is
	active, and pytest swaps it while capturing).
	"""

	def print(self, *objects: object, **kwargs: Any) -> None:
		"""Render *objects* with Rich on stderr."""
		get_rich_console().print(*objects, **kwargs)


console = _ConsoleProxy()


def escape_markup(text: object) -> str:
	"""Escape *text* so Rich prints user-supplied brackets literally."""
	try:
		from rich.markup import escape
	except ModuleNotFoundError as exc:
		raise EnvironmentError(
			"rich is not installed. Install with: pip install rich",
		) from exc
	return escape(str(text))
