"""Device confirmation bridge — one outstanding signing prompt at a time.

The bridge owns the only piece of mutable shared state the core keeps
for itself: the *outstanding request* slot.  A second request while the
slot is taken is a logic error upstream and fails fast with
:class:`~wallet_cli.exceptions.ConfirmationInProgressError`; requests
are never queued.

Guarantees
----------
* The waiting indicator is entered before the device is contacted and
  exited on every path: approval, rejection, timeout, device error and
  cancellation.
* Exactly one :class:`ConfirmationResult` is returned per completed call.
* Device errors are never retried.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from contextlib import AbstractContextManager

from wallet_cli.core.models import ConfirmationRequest, ConfirmationResult
from wallet_cli.core.protocols import SigningDevice
from wallet_cli.exceptions import ConfirmationInProgressError

logger = logging.getLogger(__name__)

WaitingIndicator = Callable[[ConfirmationRequest], AbstractContextManager[object]]
"""Factory for the user-visible "waiting for device" indicator."""


def _no_indicator(_request: ConfirmationRequest) -> AbstractContextManager[object]:
    return contextlib.nullcontext()


def _discard_late_response(task: asyncio.Task[ConfirmationResult]) -> None:
    """Consume the outcome of an abandoned device call."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Late device failure discarded: %s", exc)
    else:
        logger.debug("Late device response discarded: %s", task.result().status.value)


class DeviceConfirmationBridge:
    """Coordinates a signing device with a user-visible waiting prompt.

    Parameters
    ----------
    device:
        Any object satisfying the :class:`SigningDevice` protocol.
    indicator:
        Context-manager factory entered for the duration of each call.
    """

    def __init__(
        self,
        device: SigningDevice,
        *,
        indicator: WaitingIndicator | None = None,
    ) -> None:
        self._device: SigningDevice = device
        self._indicator: WaitingIndicator = indicator or _no_indicator
        self._outstanding: ConfirmationRequest | None = None

    @property
    def outstanding(self) -> ConfirmationRequest | None:
        """The request currently shown on the device, if any."""
        return self._outstanding

    async def confirm(
        self,
        request: ConfirmationRequest,
        timeout: float,
    ) -> ConfirmationResult:
        """Present *request* on the device and wait for a terminal answer.

        Raises
        ------
        ConfirmationInProgressError
            If another confirmation is still outstanding.
        asyncio.CancelledError
            If the awaiting task is cancelled; the device call is
            cancelled too and the slot is released.
        """
        if self._outstanding is not None:
            raise ConfirmationInProgressError(
                "A device confirmation is already in progress.",
                hint=f"Pending: {self._outstanding.summary}",
            )

        self._outstanding = request
        try:
            with self._indicator(request):
                result = await self._ask_device(request, timeout)
        finally:
            self._outstanding = None

        logger.info("Device confirmation finished: %s", result.status.value)
        return result

    async def _ask_device(
        self,
        request: ConfirmationRequest,
        timeout: float,
    ) -> ConfirmationResult:
        call = asyncio.ensure_future(
            self._device.request_confirmation(request.summary, timeout),
        )
        try:
            done, _pending = await asyncio.wait({call}, timeout=timeout)
        except asyncio.CancelledError:
            call.cancel()
            call.add_done_callback(_discard_late_response)
            raise

        if not done:
            # Cancel if the device allows it; whatever arrives later is dropped.
            call.cancel()
            call.add_done_callback(_discard_late_response)
            logger.warning("Device did not answer within %.1fs", timeout)
            return ConfirmationResult.timed_out()

        if call.cancelled():
            return ConfirmationResult.device_error("device call was cancelled")

        exc = call.exception()
        if exc is not None:
            logger.warning("Device error: %s", exc)
            return ConfirmationResult.device_error(str(exc) or type(exc).__name__)

        result = call.result()
        if not isinstance(result, ConfirmationResult):
            return ConfirmationResult.device_error(
                f"unexpected device response: {result!r}",
            )
        return result
