"""Tests for the bot entrypoint helpers."""

from unittest.mock import MagicMock

import pytest

from zeppelin import main
from zeppelin.configuration.app_configuration import ConfigStore
from zeppelin.plugins import ALL_PLUGINS


def test_resolve_base_dir_prefers_env(monkeypatch, tmp_path):
    monkeypatch.setenv("ZEPPELIN_HOME", str(tmp_path))
    assert main.resolve_base_dir() == tmp_path.resolve()


def test_build_intents():
    intents = main.build_intents()

    assert intents.guilds
    assert intents.members
    assert intents.message_content
    assert intents.voice_states


def test_load_environment_returns_token(monkeypatch):
    monkeypatch.setattr(main, "load_dotenv", MagicMock())
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "token")

    assert main.load_environment() == "token"


def test_load_environment_exits_without_token(monkeypatch):
    monkeypatch.setattr(main, "load_dotenv", MagicMock())
    monkeypatch.delenv("DISCORD_BOT_TOKEN", raising=False)

    with pytest.raises(SystemExit):
        main.load_environment()


def test_create_bot_registers_every_plugin(monkeypatch, config_dir):
    fake_bot = MagicMock()
    monkeypatch.setattr(main.discord, "Bot", MagicMock(return_value=fake_bot))

    bot, manager = main.create_bot(ConfigStore(config_dir))

    assert bot is fake_bot
    assert set(manager.plugins) == {plugin.plugin_name for plugin in ALL_PLUGINS}
    # every plugin plus the manager itself
    assert fake_bot.add_cog.call_count == len(ALL_PLUGINS) + 1


@pytest.mark.asyncio
async def test_shutdown_runtime_closes_everything(monkeypatch):
    manager = MagicMock()
    manager.shutdown = MagicMock(side_effect=RuntimeError("boom"))
    bot = MagicMock()
    bot.is_closed.return_value = True
    close = MagicMock()

    async def fake_close():
        close()

    monkeypatch.setattr(main.db_connection, "close", fake_close)

    await main.shutdown_runtime(bot, manager)

    bot.close.assert_not_called()
    close.assert_called_once()
