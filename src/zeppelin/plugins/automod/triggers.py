"""Automod triggers: word lists, regexes and Discord invites."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterator, List, Tuple

import discord

from zeppelin.configuration.validation import strict_object
from zeppelin.plugins.automod.helpers import (
    AutomodContext,
    AutomodTriggerBlueprint,
    AutomodTriggerMatchResult,
    automod_trigger,
)
from zeppelin.util.helpers import disable_code_blocks
from zeppelin.util.logger import get_logger

logger = get_logger("automod_triggers")

INVITE_REGEX = re.compile(r"(?:discord\.gg|discord(?:app)?\.com/invite)/([a-z0-9-]+)", re.IGNORECASE)

_STRING_LIST = {"type": "array", "items": {"type": "string"}}

TEXT_SOURCE_PROPERTIES = {
    "match_messages": {"type": "boolean"},
    "match_embeds": {"type": "boolean"},
    "match_usernames": {"type": "boolean"},
    "match_nicknames": {"type": "boolean"},
}

TEXT_SOURCE_DEFAULTS = {
    "match_messages": True,
    "match_embeds": False,
    "match_usernames": False,
    "match_nicknames": False,
}


def iter_text_sources(context: AutomodContext, trigger_config: Dict[str, Any]) -> Iterator[Tuple[str, str]]:
    """Yield ``(source_type, text)`` pairs of the context that the trigger is configured to look at."""
    message = context.message
    if message is not None:
        if trigger_config.get("match_messages") and message.content:
            yield "message", message.content
        if trigger_config.get("match_embeds"):
            for embed in message.embeds:
                yield "embed", json.dumps(embed.to_dict())

    if trigger_config.get("match_usernames") and context.user is not None:
        yield "username", str(context.user.name)
    if trigger_config.get("match_nicknames") and context.member is not None and context.member.nick:
        yield "nickname", context.member.nick


def _describe_source(source_type: str, context: AutomodContext) -> str:
    if source_type in ("message", "embed") and context.message is not None:
        return f"{source_type} in <#{context.message.channel.id}>"
    return source_type


# --------------------------
# match_words
# --------------------------
def _word_pattern(word: str, trigger_config: Dict[str, Any]) -> re.Pattern:
    pattern = re.escape(word)
    if trigger_config["only_full_words"]:
        pattern = rf"(?<!\w){pattern}(?!\w)"
    return re.compile(pattern, 0 if trigger_config["case_sensitive"] else re.IGNORECASE)


def match_words(*, rule_name, plugin_data, context, trigger_config) -> AutomodTriggerMatchResult | None:
    for source_type, text in iter_text_sources(context, trigger_config):
        for word in trigger_config["words"]:
            if _word_pattern(word, trigger_config).search(text):
                return AutomodTriggerMatchResult(extra={"word": word, "type": source_type})
    return None


def render_match_words(*, rule_name, plugin_data, contexts, trigger_config, match_result) -> str:
    word = disable_code_blocks(match_result.extra["word"])
    return f"Matched word `{word}` in {_describe_source(match_result.extra['type'], contexts[0])}"


MATCH_WORDS = automod_trigger(AutomodTriggerBlueprint(
    config_schema=strict_object({
        "words": _STRING_LIST,
        "case_sensitive": {"type": "boolean"},
        "only_full_words": {"type": "boolean"},
        **TEXT_SOURCE_PROPERTIES,
    }, required=["words"]),
    default_config={
        "case_sensitive": False,
        "only_full_words": True,
        **TEXT_SOURCE_DEFAULTS,
    },
    match=match_words,
    render_match_information=render_match_words,
))


# --------------------------
# match_regex
# --------------------------
def compile_patterns(trigger_config: Dict[str, Any]) -> List[re.Pattern]:
    """
    Raises:
        re.error: If a pattern is not a valid regular expression.
    """
    flags = 0 if trigger_config.get("case_sensitive") else re.IGNORECASE
    return [re.compile(pattern, flags) for pattern in trigger_config["patterns"]]


def match_regex(*, rule_name, plugin_data, context, trigger_config) -> AutomodTriggerMatchResult | None:
    patterns = compile_patterns(trigger_config)
    for source_type, text in iter_text_sources(context, trigger_config):
        for pattern in patterns:
            if pattern.search(text):
                return AutomodTriggerMatchResult(extra={"pattern": pattern.pattern, "type": source_type})
    return None


def render_match_regex(*, rule_name, plugin_data, contexts, trigger_config, match_result) -> str:
    pattern = disable_code_blocks(match_result.extra["pattern"])
    return f"Matched regex `{pattern}` in {_describe_source(match_result.extra['type'], contexts[0])}"


MATCH_REGEX = automod_trigger()(AutomodTriggerBlueprint(
    config_schema=strict_object({
        "patterns": _STRING_LIST,
        "case_sensitive": {"type": "boolean"},
        **TEXT_SOURCE_PROPERTIES,
    }, required=["patterns"]),
    default_config={
        "case_sensitive": False,
        **TEXT_SOURCE_DEFAULTS,
    },
    match=match_regex,
    render_match_information=render_match_regex,
))


# --------------------------
# match_invites
# --------------------------
def find_invite_codes(text: str) -> List[str]:
    codes: List[str] = []
    for code in INVITE_REGEX.findall(text):
        if code not in codes:
            codes.append(code)
    return codes


async def _resolve_invite(client: discord.Client, code: str) -> discord.Invite | None:
    try:
        return await client.fetch_invite(code)
    except discord.NotFound:
        return None


async def match_invites(*, rule_name, plugin_data, context, trigger_config) -> AutomodTriggerMatchResult | None:
    include_guilds = trigger_config.get("include_guilds")
    exclude_guilds = trigger_config.get("exclude_guilds")
    include_codes = trigger_config.get("include_invite_codes")
    exclude_codes = trigger_config.get("exclude_invite_codes")
    filtering = any(value is not None for value in (include_guilds, exclude_guilds, include_codes, exclude_codes))

    for source_type, text in iter_text_sources(context, trigger_config):
        for code in find_invite_codes(text):
            match = AutomodTriggerMatchResult(extra={"code": code, "type": source_type})
            if not filtering:
                return match
            if include_codes is not None and code in include_codes:
                return match
            if exclude_codes is not None and code not in exclude_codes:
                return match

            if include_guilds is None and exclude_guilds is None:
                continue

            invite = await _resolve_invite(plugin_data.client, code)
            if invite is None:
                # Unknown or expired invites are treated as matches
                return match
            if invite.guild is None:
                if not trigger_config["allow_group_dm_invites"]:
                    return match
                continue

            guild_id = str(invite.guild.id)
            if include_guilds is not None and guild_id in include_guilds:
                return match
            if exclude_guilds is not None and guild_id not in exclude_guilds:
                return match

    return None


def render_match_invites(*, rule_name, plugin_data, contexts, trigger_config, match_result) -> str:
    code = disable_code_blocks(match_result.extra["code"])
    return f"Contains invite `{code}` in {_describe_source(match_result.extra['type'], contexts[0])}"


MATCH_INVITES = automod_trigger(AutomodTriggerBlueprint(
    config_schema=strict_object({
        "include_guilds": _STRING_LIST,
        "exclude_guilds": _STRING_LIST,
        "include_invite_codes": _STRING_LIST,
        "exclude_invite_codes": _STRING_LIST,
        "allow_group_dm_invites": {"type": "boolean"},
        **TEXT_SOURCE_PROPERTIES,
    }, required=[]),
    default_config={
        "allow_group_dm_invites": False,
        **TEXT_SOURCE_DEFAULTS,
    },
    match=match_invites,
    render_match_information=render_match_invites,
))


AVAILABLE_TRIGGERS: Dict[str, AutomodTriggerBlueprint] = {
    "match_words": MATCH_WORDS,
    "match_regex": MATCH_REGEX,
    "match_invites": MATCH_INVITES,
}
