"""Tests for the simulated signing device (infra/device_simulator.py)."""

from __future__ import annotations

import asyncio

import pytest

from wallet_cli.core.models import ConfirmationStatus
from wallet_cli.exceptions import DeviceError
from wallet_cli.infra.device_simulator import RESPONSES, SimulatedSigningDevice


class TestSimulatedSigningDevice:
    def test_unknown_response_rejected(self) -> None:
        with pytest.raises(ValueError):
            SimulatedSigningDevice("maybe")

    def test_known_responses(self) -> None:
        assert RESPONSES == ("approve", "reject", "ignore", "error")

    @pytest.mark.asyncio
    async def test_approve(self) -> None:
        device = SimulatedSigningDevice("approve", delay=0)
        result = await device.request_confirmation("Send 1 to wal1abc", 1.0)
        assert result.status is ConfirmationStatus.APPROVED
        assert device.requests == ["Send 1 to wal1abc"]

    @pytest.mark.asyncio
    async def test_reject(self) -> None:
        device = SimulatedSigningDevice("reject", delay=0)
        result = await device.request_confirmation("summary", 1.0)
        assert result.status is ConfirmationStatus.REJECTED

    @pytest.mark.asyncio
    async def test_error(self) -> None:
        device = SimulatedSigningDevice("error", delay=0)
        with pytest.raises(DeviceError):
            await device.request_confirmation("summary", 1.0)

    @pytest.mark.asyncio
    async def test_ignore_never_answers(self) -> None:
        device = SimulatedSigningDevice("ignore", delay=0)
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(device.request_confirmation("summary", 1.0), timeout=0.01)
