"""Infrastructure: desktop notification delivery.

Locates a platform notification command on the system PATH and uses it
to deliver :class:`~wallet_cli.core.models.Notification` events.  When
no command is available, or delivery fails, the notification is handed
to a fallback callable instead (the CLI prints it to the console).

Rules
-----
* Detection via :func:`shutil.which` only.
* Delivery failures never propagate — notifications are best effort.
* Delivery never blocks the event loop.
* No ``print()`` — callers provide the fallback rendering.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import platform
import shutil
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from wallet_cli.core.models import Notification

logger = logging.getLogger(__name__)

APP_NAME = "wallet"
DELIVERY_TIMEOUT = 5.0


# ---------------------------------------------------------------------------
# Detection result
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class NotifierStatus:
    """Result of a notification-backend lookup.

    Attributes
    ----------
    found : bool
        Whether a notification command was located on PATH.
    command : str
        Name of the command looked for (``notify-send``, ``osascript``).
    path : Path | None
        Absolute path to the command, or ``None``.
    """

    found: bool
    command: str
    path: Path | None


# ---------------------------------------------------------------------------
# Detection logic
# ---------------------------------------------------------------------------

def _platform_command() -> str | None:
    """Return the notification command name for the current OS."""
    system = platform.system().lower()
    if system == "linux":
        return "notify-send"
    if system == "darwin":
        return "osascript"
    return None


def detect_notifier() -> NotifierStatus:
    """Look for a desktop notification command on the system PATH."""
    command = _platform_command()
    if command is None:
        return NotifierStatus(found=False, command="", path=None)

    result = shutil.which(command)
    if result is None:
        return NotifierStatus(found=False, command=command, path=None)
    return NotifierStatus(found=True, command=command, path=Path(result).resolve())


def build_argv(status: NotifierStatus, notification: Notification) -> list[str]:
    """Build the command line that shows *notification*."""
    if status.path is None:
        raise ValueError("no notification command available")
    if status.command == "osascript":
        body = notification.body.replace('"', '\\"')
        title = notification.title.replace('"', '\\"')
        script = f'display notification "{body}" with title "{title}"'
        return [str(status.path), "-e", script]
    urgency = "normal" if notification.success else "critical"
    return [
        str(status.path),
        f"--app-name={APP_NAME}",
        f"--urgency={urgency}",
        notification.title,
        notification.body,
    ]


# ---------------------------------------------------------------------------
# Notifier
# ---------------------------------------------------------------------------

class DesktopNotifier:
    """Concrete :class:`Notifier` backed by the platform notification command.

    Inside a running event loop the command runs on the loop's default
    executor so a slow notification daemon never stalls the prompt.
    Deliveries still running can be awaited with :meth:`drain`.

    Parameters
    ----------
    fallback:
        Called with the notification when desktop delivery is impossible.
    status:
        Pre-computed detection result; detected on construction when omitted.
    """

    def __init__(
        self,
        *,
        fallback: Callable[[Notification], None] | None = None,
        status: NotifierStatus | None = None,
    ) -> None:
        self._fallback = fallback
        self._status: NotifierStatus = status if status is not None else detect_notifier()
        self._pending: set[asyncio.Future[bool]] = set()

    @property
    def status(self) -> NotifierStatus:
        return self._status

    @property
    def pending(self) -> int:
        """Number of deliveries still running."""
        return len(self._pending)

    def notify(self, notification: Notification) -> None:
        if not self._status.found:
            self._fall_back(notification)
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if not self._deliver(notification):
                self._fall_back(notification)
            return

        future = loop.run_in_executor(None, self._deliver, notification)
        self._pending.add(future)
        future.add_done_callback(functools.partial(self._delivered, notification))

    async def drain(self) -> None:
        """Wait for deliveries still running, bounded by their own timeout."""
        if self._pending:
            await asyncio.wait(set(self._pending))

    def _deliver(self, notification: Notification) -> bool:
        try:
            subprocess.run(
                build_argv(self._status, notification),
                check=True,
                capture_output=True,
                timeout=DELIVERY_TIMEOUT,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug("Desktop notification failed: %s", exc)
            return False
        return True

    def _delivered(self, notification: Notification, future: asyncio.Future[bool]) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.debug("Desktop notification failed: %s", exc)
        if exc is not None or not future.result():
            self._fall_back(notification)

    def _fall_back(self, notification: Notification) -> None:
        if self._fallback is not None:
            self._fallback(notification)
