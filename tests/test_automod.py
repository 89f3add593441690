"""Tests for the automod plugin: triggers, actions, rule evaluation and the message listener."""

import time
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from zeppelin.configuration.app_configuration import GuildConfig
from zeppelin.core.errors import ConfigValidationError
from zeppelin.core.plugin_manager import get_merged_plugin_options
from zeppelin.plugin_utils import get_plugin_config_preprocessor
from zeppelin.plugins.automod import AutomodPlugin
from zeppelin.plugins.automod.actions import (
    AVAILABLE_ACTIONS,
    apply_alert,
    apply_clean,
    apply_reply,
    apply_set_slowmode,
    render_template,
)
from zeppelin.plugins.automod.helpers import (
    AutomodActionBlueprint,
    AutomodContext,
    AutomodTriggerBlueprint,
    AutomodTriggerMatchResult,
    automod_action,
    automod_trigger,
    maybe_await,
    unique_messages,
)
from zeppelin.plugins.automod.plugin import preprocess_automod_options
from zeppelin.plugins.automod.run_automod import match_rule, run_automod
from zeppelin.plugins.automod.triggers import (
    AVAILABLE_TRIGGERS,
    MATCH_INVITES,
    MATCH_REGEX,
    MATCH_WORDS,
    match_invites,
    match_regex,
    match_words,
)
from zeppelin.plugins.slowmode import SlowmodePlugin

from conftest import make_guild, make_member, make_plugin_data, make_text_channel

GUILD_ID = 1000
MODERATOR_ID = 50
USER_ID = 60


@pytest.fixture
def guild():
    return make_guild(GUILD_ID, owner_id=1)


@pytest.fixture
def channel(guild):
    return make_text_channel(10, guild)


@pytest.fixture
def user(guild):
    return make_member(USER_ID, guild)


@pytest.fixture
def plugin_data(guild):
    client = MagicMock()
    client.user = SimpleNamespace(id=999)
    client.fetch_invite = AsyncMock()
    return make_plugin_data(None, guild, {"rules": {}, "is_affected": True}, client=client)


def make_message(author, channel, content, message_id=555):
    return SimpleNamespace(
        id=message_id,
        content=content,
        author=author,
        channel=channel,
        guild=channel.guild,
        embeds=[],
        jump_url=f"https://discord.com/channels/{GUILD_ID}/{channel.id}/{message_id}",
        delete=AsyncMock(),
    )


def make_context(author, channel, content, message_id=555):
    message = make_message(author, channel, content, message_id)
    member = author if isinstance(author, discord.Member) else None
    return AutomodContext(timestamp=time.time(), user=author, message=message, member=member)


def words_trigger(*words, **config):
    return {"match_words": {**MATCH_WORDS.default_config, "words": list(words), **config}}


def make_rule(triggers, actions, **flags):
    return {
        "enabled": True,
        "affects_bots": False,
        "allow_further_rules": False,
        "triggers": triggers,
        "actions": actions,
        **flags,
    }


class TestHelpers:
    def test_automod_trigger_plain_and_curried(self):
        blueprint = AutomodTriggerBlueprint({}, {}, match=lambda **kwargs: None, render_match_information=lambda **kwargs: "")
        assert automod_trigger(blueprint) is blueprint
        assert automod_trigger()(blueprint) is blueprint

    def test_unique_messages(self, user, channel):
        first = make_context(user, channel, "a", message_id=1)
        duplicate = AutomodContext(timestamp=0, message=first.message)
        second = make_context(user, channel, "b", message_id=2)
        no_message = AutomodContext(timestamp=0, user=user)

        assert unique_messages([first, duplicate, no_message, second]) == [first.message, second.message]

    @pytest.mark.asyncio
    async def test_maybe_await(self):
        async def coroutine():
            return 2

        assert await maybe_await(1) == 1
        assert await maybe_await(coroutine()) == 2

    def test_render_template(self):
        assert render_template("{user} broke {rule} {unknown}", {"user": "<@1>", "rule": "r"}) == "<@1> broke r {unknown}"


class TestMatchWords:
    def run(self, context, **config):
        trigger_config = words_trigger("apple", **config)["match_words"]
        return match_words(rule_name="r", plugin_data=None, context=context, trigger_config=trigger_config)

    def test_full_words_only_by_default(self, user, channel):
        assert self.run(make_context(user, channel, "I like pineapples")) is None
        assert self.run(make_context(user, channel, "an APPLE a day")).extra == {"word": "apple", "type": "message"}

    def test_partial_words(self, user, channel):
        assert self.run(make_context(user, channel, "I like pineapples"), only_full_words=False) is not None

    def test_case_sensitive(self, user, channel):
        assert self.run(make_context(user, channel, "APPLE"), case_sensitive=True) is None

    def test_nicknames(self, user, channel):
        user.nick = "apple fan"
        context = make_context(user, channel, "hello")

        assert self.run(context) is None
        result = self.run(context, match_messages=False, match_nicknames=True)
        assert result.extra == {"word": "apple", "type": "nickname"}

    @pytest.mark.asyncio
    async def test_match_rule_renders_summary(self, plugin_data, user, channel):
        rule = make_rule([words_trigger("apple")], {})

        result = await match_rule(plugin_data, "fruit", rule, make_context(user, channel, "apple"))

        assert result.summary == "Matched word `apple` in message in <#10>"
        assert result.full_summary == "Triggered automod rule **fruit**\nMatched word `apple` in message in <#10>"


class TestMatchRegex:
    def test_matches_pattern(self, user, channel):
        trigger_config = {**MATCH_REGEX.default_config, "patterns": [r"free\s+nitro"]}
        context = make_context(user, channel, "get FREE   nitro here")

        result = match_regex(rule_name="r", plugin_data=None, context=context, trigger_config=trigger_config)

        assert result.extra == {"pattern": r"free\s+nitro", "type": "message"}

    def test_no_match(self, user, channel):
        trigger_config = {**MATCH_REGEX.default_config, "patterns": [r"^spam$"]}
        context = make_context(user, channel, "not spam")

        assert match_regex(rule_name="r", plugin_data=None, context=context, trigger_config=trigger_config) is None


class TestMatchInvites:
    async def run(self, plugin_data, context, **config):
        trigger_config = {**MATCH_INVITES.default_config, **config}
        return await match_invites(rule_name="r", plugin_data=plugin_data, context=context, trigger_config=trigger_config)

    @pytest.mark.asyncio
    async def test_any_invite_without_filters(self, plugin_data, user, channel):
        result = await self.run(plugin_data, make_context(user, channel, "join https://discord.gg/abc123 now"))

        assert result.extra == {"code": "abc123", "type": "message"}
        plugin_data.client.fetch_invite.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_invite(self, plugin_data, user, channel):
        assert await self.run(plugin_data, make_context(user, channel, "hello there")) is None

    @pytest.mark.asyncio
    async def test_invite_code_filters(self, plugin_data, user, channel):
        context = make_context(user, channel, "discord.gg/abc")

        assert await self.run(plugin_data, context, include_invite_codes=["abc"]) is not None
        assert await self.run(plugin_data, context, include_invite_codes=["xyz"]) is None
        assert await self.run(plugin_data, context, exclude_invite_codes=["abc"]) is None

    @pytest.mark.asyncio
    async def test_guild_filters(self, plugin_data, user, channel):
        context = make_context(user, channel, "discord.com/invite/abc")
        plugin_data.client.fetch_invite.return_value = SimpleNamespace(guild=SimpleNamespace(id=GUILD_ID))

        assert await self.run(plugin_data, context, exclude_guilds=[str(GUILD_ID)]) is None
        assert await self.run(plugin_data, context, exclude_guilds=["2000"]) is not None
        assert await self.run(plugin_data, context, include_guilds=[str(GUILD_ID)]) is not None
        plugin_data.client.fetch_invite.assert_awaited_with("abc")

    @pytest.mark.asyncio
    async def test_unknown_invite_matches(self, plugin_data, user, channel):
        plugin_data.client.fetch_invite.side_effect = discord.NotFound(MagicMock(status=404), "Unknown invite")

        result = await self.run(plugin_data, make_context(user, channel, "discord.gg/gone"), exclude_guilds=[str(GUILD_ID)])

        assert result is not None

    @pytest.mark.asyncio
    async def test_group_dm_invites(self, plugin_data, user, channel):
        plugin_data.client.fetch_invite.return_value = SimpleNamespace(guild=None)
        context = make_context(user, channel, "discord.gg/groupdm")

        assert await self.run(plugin_data, context, exclude_guilds=[str(GUILD_ID)]) is not None
        assert await self.run(plugin_data, context, exclude_guilds=[str(GUILD_ID)], allow_group_dm_invites=True) is None


class TestPreprocessor:
    @pytest.mark.asyncio
    async def test_fills_trigger_and_action_defaults(self):
        options = {
            "config": {
                "rules": {
                    "fruit": {
                        "triggers": [{"match_words": {"words": ["apple"]}}],
                        "actions": {"alert": {"channel": "20"}, "clean": True},
                    },
                },
            },
            "overrides": [
                {
                    "channel": "30",
                    "config": {"rules": {"fruit": {"triggers": [{"match_regex": {"patterns": ["pear"]}}]}}},
                },
            ],
        }

        processed = await preprocess_automod_options(options)

        rule = processed["config"]["rules"]["fruit"]
        assert rule["triggers"][0]["match_words"]["only_full_words"] is True
        assert rule["triggers"][0]["match_words"]["match_messages"] is True
        assert rule["actions"]["alert"]["text"].startswith("Automod rule **{rule}**")
        assert rule["actions"]["clean"] is True
        override_trigger = processed["overrides"][0]["config"]["rules"]["fruit"]["triggers"][0]["match_regex"]
        assert override_trigger["case_sensitive"] is False
        # input is left untouched
        assert options["config"]["rules"]["fruit"]["triggers"][0]["match_words"] == {"words": ["apple"]}

    @pytest.mark.asyncio
    async def test_rule_defined_only_in_override_matches(self, guild, user, channel):
        options = get_merged_plugin_options(AutomodPlugin.default_options, {
            "overrides": [
                {
                    "channel": "10",
                    "config": {
                        "rules": {
                            "only_here": {
                                "triggers": [{"match_words": {"words": ["bad"]}}],
                                "actions": {"clean": True},
                            },
                        },
                    },
                },
            ],
        })
        preprocess = get_plugin_config_preprocessor(AutomodPlugin, AutomodPlugin.config_preprocessor)
        processed = await preprocess(options)
        plugin_data = make_plugin_data(None, guild, processed["config"], processed["overrides"])
        manager = MagicMock()
        manager.get_plugin_data.return_value = plugin_data
        cog = AutomodPlugin(MagicMock(), manager)

        rule = plugin_data.config.get_for_channel(channel)["rules"]["only_here"]
        assert rule["enabled"] is True
        assert rule["affects_bots"] is False
        assert rule["allow_further_rules"] is False

        message = make_message(user, channel, "this is bad")
        await cog.on_message(message)
        message.delete.assert_awaited_once()

        other_message = make_message(user, make_text_channel(11, guild), "this is bad")
        await cog.on_message(other_message)
        other_message.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_partial_override_keeps_base_rule_flags(self):
        options = get_merged_plugin_options(AutomodPlugin.default_options, {
            "config": {
                "rules": {
                    "fruit": {
                        "affects_bots": True,
                        "triggers": [{"match_words": {"words": ["apple"]}}],
                        "actions": {"clean": True},
                    },
                },
            },
            "overrides": [{"channel": "10", "config": {"rules": {"fruit": {"enabled": False}}}}],
        })

        processed = await get_plugin_config_preprocessor(AutomodPlugin, AutomodPlugin.config_preprocessor)(options)

        assert processed["overrides"][-1]["config"]["rules"]["fruit"] == {"enabled": False}
        assert processed["config"]["rules"]["fruit"]["affects_bots"] is True

    @pytest.mark.asyncio
    async def test_rejects_invalid_regex(self):
        options = {
            "config": {
                "rules": {
                    "broken": {"triggers": [{"match_regex": {"patterns": ["(unclosed"]}}], "actions": {"clean": True}},
                },
            },
            "overrides": [],
        }

        with pytest.raises(ConfigValidationError, match="Invalid regex in automod rule 'broken'"):
            await preprocess_automod_options(options)


class TestRunAutomod:
    @pytest.mark.asyncio
    async def test_matching_rule_applies_actions(self, plugin_data, user, channel):
        context = make_context(user, channel, "apple")
        config = {"rules": {"fruit": make_rule([words_trigger("apple")], {"clean": True})}}

        assert await run_automod(plugin_data, context, config) is True
        assert context.actioned is True
        context.message.delete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_disabled_rule_is_skipped(self, plugin_data, user, channel):
        context = make_context(user, channel, "apple")
        config = {"rules": {"fruit": make_rule([words_trigger("apple")], {"clean": True}, enabled=False)}}

        assert await run_automod(plugin_data, context, config) is False
        context.message.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_bots_only_affected_when_enabled(self, plugin_data, guild, channel):
        bot = make_member(70, guild, bot=True)
        context = make_context(bot, channel, "apple")

        config = {"rules": {"fruit": make_rule([words_trigger("apple")], {"clean": True})}}
        assert await run_automod(plugin_data, context, config) is False

        config = {"rules": {"fruit": make_rule([words_trigger("apple")], {"clean": True}, affects_bots=True)}}
        assert await run_automod(plugin_data, context, config) is True

    @pytest.mark.asyncio
    async def test_first_matching_rule_wins(self, plugin_data, user, channel):
        context = make_context(user, channel, "apple")
        config = {
            "rules": {
                "first": make_rule([words_trigger("apple")], {"reply": "first"}),
                "second": make_rule([words_trigger("apple")], {"reply": "second"}),
            },
        }

        await run_automod(plugin_data, context, config)

        channel.send.assert_awaited_once_with("first", delete_after=None)

    @pytest.mark.asyncio
    async def test_allow_further_rules(self, plugin_data, user, channel):
        context = make_context(user, channel, "apple")
        config = {
            "rules": {
                "first": make_rule([words_trigger("apple")], {"reply": "first"}, allow_further_rules=True),
                "second": make_rule([words_trigger("apple")], {"reply": "second"}),
            },
        }

        await run_automod(plugin_data, context, config)

        assert [call.args[0] for call in channel.send.await_args_list] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_silent_clean_only_cleans(self, monkeypatch, plugin_data, user, channel):
        silent = automod_trigger()(AutomodTriggerBlueprint(
            config_schema={"type": "object"},
            default_config={},
            match=lambda **kwargs: AutomodTriggerMatchResult(silent_clean=True, summary="silent"),
            render_match_information=lambda **kwargs: "silent",
        ))
        monkeypatch.setitem(AVAILABLE_TRIGGERS, "silent", silent)
        context = make_context(user, channel, "anything")
        config = {"rules": {"quiet": make_rule([{"silent": {}}], {"reply": "should not be sent", "clean": False})}}

        assert await run_automod(plugin_data, context, config) is True

        context.message.delete.assert_awaited_once()
        channel.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_action_does_not_stop_others(self, monkeypatch, plugin_data, user, channel):
        async def explode(**kwargs):
            raise RuntimeError("boom")

        monkeypatch.setitem(AVAILABLE_ACTIONS, "explode", automod_action(AutomodActionBlueprint({}, None, explode)))
        context = make_context(user, channel, "apple")
        config = {"rules": {"fruit": make_rule([words_trigger("apple")], {"explode": True, "clean": True})}}

        await run_automod(plugin_data, context, config)

        context.message.delete.assert_awaited_once()


class TestActions:
    def match_result(self):
        return AutomodTriggerMatchResult(summary="Matched word `apple`", full_summary="Triggered automod rule **r**")

    @pytest.mark.asyncio
    async def test_clean_deletes_each_message_once(self, plugin_data, user, channel):
        context = make_context(user, channel, "apple")
        duplicate = AutomodContext(timestamp=0, message=context.message)

        await apply_clean(rule_name="r", plugin_data=plugin_data, contexts=[context, duplicate], action_config=True, match_result=self.match_result())

        context.message.delete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reply_with_auto_delete(self, plugin_data, user, channel):
        context = make_context(user, channel, "apple")

        await apply_reply(
            rule_name="fruit",
            plugin_data=plugin_data,
            contexts=[context],
            action_config={"text": "{user} broke rule {rule}", "auto_delete": "5s"},
            match_result=self.match_result(),
        )

        channel.send.assert_awaited_once_with(f"<@{USER_ID}> broke rule fruit", delete_after=5)

    @pytest.mark.asyncio
    async def test_alert(self, plugin_data, guild, user, channel):
        alert_channel = make_text_channel(20, guild, name="mod-log")
        guild.get_channel.return_value = alert_channel
        context = make_context(user, channel, "apple")

        await apply_alert(
            rule_name="fruit",
            plugin_data=plugin_data,
            contexts=[context],
            action_config={"channel": "20", "text": AVAILABLE_ACTIONS["alert"].default_config["text"]},
            match_result=self.match_result(),
        )

        guild.get_channel.assert_called_once_with(20)
        text = alert_channel.send.await_args.args[0]
        assert text == f"Automod rule **fruit** triggered by <@!{USER_ID}> (**user{USER_ID}**, `{USER_ID}`)\nMatched word `apple`"
        assert isinstance(alert_channel.send.await_args.kwargs["allowed_mentions"], discord.AllowedMentions)

    @pytest.mark.asyncio
    async def test_alert_to_missing_channel(self, plugin_data, user, channel):
        await apply_alert(
            rule_name="fruit",
            plugin_data=plugin_data,
            contexts=[make_context(user, channel, "apple")],
            action_config={"channel": "20", "text": "x"},
            match_result=self.match_result(),
        )

        channel.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_set_slowmode_uses_slowmode_plugin(self, db, guild, user, channel):
        slowmode_data = make_plugin_data(None, guild, dict(SlowmodePlugin.default_options["config"]))
        manager = MagicMock()
        manager.get_plugin_data.return_value = slowmode_data
        automod_data = make_plugin_data(None, guild, {"rules": {}, "is_affected": True}, manager=manager)
        guild.get_channel.return_value = channel

        await apply_set_slowmode(
            rule_name="fruit",
            plugin_data=automod_data,
            contexts=[make_context(user, channel, "apple")],
            action_config={"channels": [], "duration": "10s"},
            match_result=self.match_result(),
        )

        manager.get_plugin_data.assert_called_once_with(GUILD_ID, "slowmode")
        channel.edit.assert_awaited_once_with(slowmode_delay=10)


class TestAutomodPlugin:
    @pytest.fixture
    def automod_data(self, tmp_path, guild):
        path = tmp_path / f"{GUILD_ID}.yml"
        path.write_text(f'levels:\n  "{MODERATOR_ID}": 50\n', encoding="utf-8")
        config = {
            "rules": {"fruit": make_rule([words_trigger("apple")], {"clean": True})},
            "is_affected": True,
        }
        return make_plugin_data(None, guild, config, AutomodPlugin.default_options["overrides"], guild_config=GuildConfig(GUILD_ID, path))

    @pytest.fixture
    def cog(self, automod_data):
        manager = MagicMock()
        manager.get_plugin_data.return_value = automod_data
        return AutomodPlugin(MagicMock(), manager)

    @pytest.mark.asyncio
    async def test_regular_members_are_moderated(self, cog, user, channel):
        message = make_message(user, channel, "apple")

        await cog.on_message(message)

        message.delete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_moderators_are_not_affected(self, cog, guild, channel):
        message = make_message(make_member(MODERATOR_ID, guild), channel, "apple")

        await cog.on_message(message)

        message.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_own_messages_are_ignored(self, cog, guild, channel):
        message = make_message(make_member(999, guild, bot=True), channel, "apple")

        await cog.on_message(message)

        message.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_direct_messages_are_ignored(self, cog, user, channel):
        message = make_message(user, channel, "apple")
        message.guild = None

        await cog.on_message(message)

        message.delete.assert_not_awaited()
