"""Automod actions: clean, reply, alert, log and set_slowmode."""

from __future__ import annotations

from typing import Any, Dict, List

import discord

from zeppelin.configuration.validation import strict_object
from zeppelin.plugins.automod.helpers import AutomodActionBlueprint, automod_action, unique_messages
from zeppelin.plugins.slowmode.plugin import SlowmodePlugin
from zeppelin.util.helpers import SECONDS, convert_delay_string_to_ms, safe_delete_message, verbose_user_mention
from zeppelin.util.logger import get_logger

logger = get_logger("automod_actions")

DEFAULT_ALERT_TEXT = "Automod rule **{rule}** triggered by {user}\n{matchSummary}"


def render_template(text: str, values: Dict[str, Any]) -> str:
    """Replace ``{name}`` placeholders of ``text``; unknown placeholders are left as is."""
    for key, value in values.items():
        text = text.replace("{" + key + "}", str(value))
    return text


def _delay_seconds(value: Any, default_unit: str = "s") -> int | None:
    ms = convert_delay_string_to_ms(str(value), default_unit)
    return None if ms is None else ms // SECONDS


# --------------------------
# clean
# --------------------------
async def apply_clean(*, rule_name, plugin_data, contexts, action_config, match_result) -> None:
    if not action_config:
        return
    for message in unique_messages(contexts):
        await safe_delete_message(message)


CLEAN = automod_action(AutomodActionBlueprint(
    config_schema={"type": "boolean"},
    default_config=False,
    apply=apply_clean,
))


# --------------------------
# reply
# --------------------------
async def apply_reply(*, rule_name, plugin_data, contexts, action_config, match_result) -> None:
    if isinstance(action_config, str):
        action_config = {"text": action_config}

    auto_delete = None
    if action_config.get("auto_delete") is not None:
        auto_delete = _delay_seconds(action_config["auto_delete"])

    replied_channels = set()
    for message in unique_messages(contexts):
        if message.channel.id in replied_channels:
            continue
        replied_channels.add(message.channel.id)

        text = render_template(action_config["text"], {"user": message.author.mention, "rule": rule_name})
        try:
            await message.channel.send(text, delete_after=auto_delete)
        except discord.HTTPException as exc:
            logger.warning("[AUTOMOD] Failed to reply in channel %s: %s", message.channel.id, exc)


REPLY = automod_action(AutomodActionBlueprint(
    config_schema={
        "anyOf": [
            {"type": "string"},
            strict_object({
                "text": {"type": "string"},
                "auto_delete": {"type": ["string", "number"]},
            }, required=["text"]),
        ],
    },
    default_config={},
    apply=apply_reply,
))


# --------------------------
# alert
# --------------------------
async def apply_alert(*, rule_name, plugin_data, contexts, action_config, match_result) -> None:
    guild = plugin_data.guild
    channel = guild.get_channel(int(action_config["channel"]))
    if not isinstance(channel, discord.TextChannel):
        logger.warning("[AUTOMOD] Alert channel %s of rule %s is not a text channel", action_config["channel"], rule_name)
        return

    users = []
    for context in contexts:
        if context.user is not None and context.user not in users:
            users.append(context.user)

    message_link = contexts[0].message.jump_url if contexts and contexts[0].message is not None else ""
    text = render_template(action_config["text"], {
        "rule": rule_name,
        "user": ", ".join(verbose_user_mention(user) for user in users),
        "matchSummary": match_result.summary or "",
        "messageLink": message_link,
    })
    try:
        await channel.send(text, allowed_mentions=discord.AllowedMentions.none())
    except discord.HTTPException as exc:
        logger.warning("[AUTOMOD] Failed to send alert to channel %s: %s", channel.id, exc)


ALERT = automod_action(AutomodActionBlueprint(
    config_schema=strict_object({
        "channel": {"type": "string"},
        "text": {"type": "string"},
    }, required=["channel"]),
    default_config={"text": DEFAULT_ALERT_TEXT},
    apply=apply_alert,
))


# --------------------------
# log
# --------------------------
def apply_log(*, rule_name, plugin_data, contexts, action_config, match_result) -> None:
    if not action_config:
        return
    user_ids = sorted({context.user.id for context in contexts if context.user is not None})
    logger.info(
        "[AUTOMOD] Guild %s, users %s: %s",
        plugin_data.guild_id,
        ", ".join(str(user_id) for user_id in user_ids),
        match_result.full_summary,
    )


LOG = automod_action(AutomodActionBlueprint(
    config_schema={"type": "boolean"},
    default_config=True,
    apply=apply_log,
))


# --------------------------
# set_slowmode
# --------------------------
async def apply_set_slowmode(*, rule_name, plugin_data, contexts, action_config, match_result) -> None:
    seconds = _delay_seconds(action_config["duration"])
    if seconds is None:
        logger.warning("[AUTOMOD] Invalid slowmode duration %r in rule %s", action_config["duration"], rule_name)
        return

    channel_ids: List[int] = [int(channel_id) for channel_id in action_config["channels"]]
    if not channel_ids:
        channel_ids = [message.channel.id for message in unique_messages(contexts)]

    slowmode = plugin_data.get_plugin(SlowmodePlugin)
    for channel_id in dict.fromkeys(channel_ids):
        channel = plugin_data.guild.get_channel(channel_id)
        if not isinstance(channel, discord.TextChannel):
            continue
        try:
            await slowmode.set_slowmode(channel, seconds)
        except discord.HTTPException as exc:
            logger.warning("[AUTOMOD] Failed to set slowmode in channel %s: %s", channel_id, exc)


SET_SLOWMODE = automod_action(AutomodActionBlueprint(
    config_schema=strict_object({
        "channels": {"type": "array", "items": {"type": "string"}},
        "duration": {"type": ["string", "number"]},
    }, required=[]),
    default_config={"channels": [], "duration": "10s"},
    apply=apply_set_slowmode,
))


AVAILABLE_ACTIONS: Dict[str, AutomodActionBlueprint] = {
    "clean": CLEAN,
    "reply": REPLY,
    "alert": ALERT,
    "log": LOG,
    "set_slowmode": SET_SLOWMODE,
}
