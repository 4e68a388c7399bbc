"""Simulated implementation of :class:`~wallet_cli.core.protocols.SigningDevice`.

Stands in for a hardware wallet the same way a Ledger Nano simulator
does: it "shows" the summary, waits for a configurable delay and then
answers according to its scripted response.

Responses
---------
``approve``  the user pressed both buttons
``reject``   the user declined the transaction
``ignore``   nobody answers; the bridge's timeout decides
``error``    the device disconnects mid-request
"""

from __future__ import annotations

import asyncio
import logging

from wallet_cli.core.models import ConfirmationResult
from wallet_cli.exceptions import DeviceError

logger = logging.getLogger(__name__)

RESPONSES: tuple[str, ...] = ("approve", "reject", "ignore", "error")


class SimulatedSigningDevice:
    """Concrete :class:`SigningDevice` with a scripted answer.

    This class satisfies the :class:`~wallet_cli.core.protocols.SigningDevice`
    protocol structurally — no explicit inheritance required.
    """

    def __init__(self, response: str = "approve", *, delay: float = 2.0) -> None:
        if response not in RESPONSES:
            raise ValueError(f"unknown simulator response: {response}")
        self.response: str = response
        self.delay: float = delay
        self.requests: list[str] = []
        """Every summary shown on the simulated screen, in order."""

    async def request_confirmation(self, summary: str, timeout: float) -> ConfirmationResult:
        self.requests.append(summary)
        logger.info("Simulated device showing: %s (timeout %.1fs)", summary, timeout)

        if self.response == "ignore":
            await asyncio.Event().wait()

        await asyncio.sleep(self.delay)
        if self.response == "error":
            raise DeviceError("device disconnected")
        if self.response == "reject":
            return ConfirmationResult.rejected()
        return ConfirmationResult.approved()
