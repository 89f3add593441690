"""Tests for the stateless helpers."""

from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from zeppelin.util.helpers import (
    DAYS,
    HOURS,
    MINUTES,
    SECONDS,
    convert_delay_string_to_ms,
    disable_code_blocks,
    error_message,
    humanize_duration,
    safe_delete_message,
    success_message,
    trim_plugin_description,
)


class TestConvertDelayString:
    def test_single_unit(self):
        assert convert_delay_string_to_ms("5m") == 5 * MINUTES
        assert convert_delay_string_to_ms("2h") == 2 * HOURS
        assert convert_delay_string_to_ms("3d") == 3 * DAYS

    def test_combined_units(self):
        assert convert_delay_string_to_ms("1h30m") == HOURS + 30 * MINUTES
        assert convert_delay_string_to_ms("1d 2h") == DAYS + 2 * HOURS

    def test_default_unit(self):
        assert convert_delay_string_to_ms("10") == 10 * MINUTES
        assert convert_delay_string_to_ms("10", "s") == 10 * SECONDS

    def test_long_unit_names(self):
        assert convert_delay_string_to_ms("10min") == 10 * MINUTES
        assert convert_delay_string_to_ms("2 hours") == 2 * HOURS

    def test_invalid(self):
        assert convert_delay_string_to_ms("") is None
        assert convert_delay_string_to_ms("abc") is None
        assert convert_delay_string_to_ms("5m!") is None


class TestHumanizeDuration:
    def test_plural_and_singular(self):
        assert humanize_duration(HOURS + 5 * MINUTES) == "1 hour, 5 minutes"
        assert humanize_duration(2 * DAYS) == "2 days"

    def test_below_one_second(self):
        assert humanize_duration(0) == "0 seconds"
        assert humanize_duration(999) == "0 seconds"


def test_message_decorations():
    assert success_message("Done") == "👌 Done"
    assert error_message("Nope") == "⚠ Nope"
    assert success_message("Done", "✅") == "✅ Done"
    assert error_message("Nope", None) == "Nope"


def test_trim_plugin_description():
    text = """
        First line
          indented
    """
    assert trim_plugin_description(text) == "First line\n  indented"


def test_disable_code_blocks():
    assert "`" + "​" in disable_code_blocks("`code`")


@pytest.mark.asyncio
async def test_safe_delete_message_success():
    message = MagicMock()
    message.delete = AsyncMock()
    assert await safe_delete_message(message) is True


@pytest.mark.asyncio
async def test_safe_delete_message_not_found():
    message = MagicMock()
    message.delete = AsyncMock(side_effect=discord.NotFound(MagicMock(status=404), "gone"))
    assert await safe_delete_message(message) is False


@pytest.mark.asyncio
async def test_safe_delete_message_forbidden():
    message = MagicMock()
    message.delete = AsyncMock(side_effect=discord.Forbidden(MagicMock(status=403), "no"))
    assert await safe_delete_message(message) is False
