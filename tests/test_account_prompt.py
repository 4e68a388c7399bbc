"""Tests for the interactive account picker (cli/account_prompt.py).

questionary is mocked — no terminal interaction.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from wallet_cli.cli.account_prompt import _build_choice_label, prompt_account_selection


class TestChoiceLabel:
    def test_one_based(self) -> None:
        assert _build_choice_label(0, "main") == "  1.  main"
        assert _build_choice_label(9, "savings") == "  10.  savings"


class TestPromptAccountSelection:
    @pytest.mark.asyncio
    async def test_empty_list(self) -> None:
        assert await prompt_account_selection([]) is None

    @pytest.mark.asyncio
    @patch("questionary.select")
    async def test_returns_choice(self, mock_select: MagicMock) -> None:
        mock_select.return_value.ask_async = AsyncMock(return_value="savings")

        assert await prompt_account_selection(["main", "savings"]) == "savings"

        _args, kwargs = mock_select.call_args
        assert [c.value for c in kwargs["choices"]] == ["main", "savings"]

    @pytest.mark.asyncio
    @patch("questionary.select")
    async def test_dismissed(self, mock_select: MagicMock) -> None:
        mock_select.return_value.ask_async = AsyncMock(return_value=None)
        assert await prompt_account_selection(["main", "savings"]) is None
