"""
Utility functions that are plugin-instance-specific (i.e. take a PluginData).
"""

from __future__ import annotations

import functools
from typing import Any, Callable, Dict, List

import discord

from zeppelin.configuration.validation import (
    StrictValidationError,
    decode_and_validate_strict,
    deep_partial,
    nullable,
    validate,
)
from zeppelin.core.config_manager import MatchParams, deep_key_intersect, merge_config
from zeppelin.core.errors import ConfigValidationError
from zeppelin.core.levels import get_member_level, has_permission as config_has_permission
from zeppelin.core.plugin import ConfigPreprocessor, PluginData, PluginOptions, ZeppelinPlugin, guild_config_of
from zeppelin.util.helpers import DEFAULT_ERROR_EMOJI, DEFAULT_SUCCESS_EMOJI, error_message, success_message
from zeppelin.util.logger import get_logger

logger = get_logger("plugin_utils")


def can_act_on(
    plugin_data: PluginData,
    member1: discord.Member,
    member2: discord.Member,
    allow_same_level: bool = False,
) -> bool:
    """Return True if ``member1`` outranks ``member2`` (or equals it, with ``allow_same_level``)."""
    if plugin_data.client.user is not None and member2.id == plugin_data.client.user.id:
        return False

    our_level = get_member_level(plugin_data, member1)
    member_level = get_member_level(plugin_data, member2)
    return our_level >= member_level if allow_same_level else our_level > member_level


def has_permission(plugin_data: PluginData, permission: str, match_params: MatchParams) -> bool:
    config = plugin_data.config.get_matching_config(match_params)
    return config_has_permission(config, permission)


_STRING_OR_LIST = nullable({"anyOf": [{"type": "string"}, {"type": "array", "items": {"type": "string"}}]})

OVERRIDE_CRITERIA_SCHEMA: Dict[str, Any] = {
    "definitions": {
        "criteria": {
            "type": "object",
            "properties": {
                "channel": _STRING_OR_LIST,
                "category": _STRING_OR_LIST,
                "level": _STRING_OR_LIST,
                "user": _STRING_OR_LIST,
                "role": _STRING_OR_LIST,
                "all": nullable({"type": "array", "items": {"$ref": "#/definitions/criteria"}}),
                "any": nullable({"type": "array", "items": {"$ref": "#/definitions/criteria"}}),
                "not": nullable({"$ref": "#/definitions/criteria"}),
                "extra": {},
                "config": {},
            },
            "additionalProperties": False,
        },
    },
}

BASIC_PLUGIN_STRUCTURE_SCHEMA: Dict[str, Any] = {
    "definitions": OVERRIDE_CRITERIA_SCHEMA["definitions"],
    "type": "object",
    "properties": {
        "enabled": nullable({"type": "boolean"}),
        "config": {},
        "overrides": nullable({"type": "array", "items": {"$ref": "#/definitions/criteria"}}),
        "replaceDefaultOverrides": nullable({"type": "boolean"}),
    },
    "additionalProperties": False,
}


def strict_validation_error_to_config_validation_error(err: StrictValidationError) -> ConfigValidationError:
    return ConfigValidationError("\n".join(str(e) for e in err.get_errors()))


def get_plugin_config_preprocessor(
    plugin: type[ZeppelinPlugin],
    custom_preprocessor: ConfigPreprocessor | None = None,
) -> Callable[[PluginOptions], Any]:
    """
    Build the options preprocessor for ``plugin``.

    The returned coroutine function validates the plugin options in stages,
    each raising :class:`ConfigValidationError` on failure:

    1. the basic structure of the options (``enabled``, ``config``,
       ``overrides``, ``replaceDefaultOverrides``);
    2. ``config`` and each override's ``config`` against the *partial*
       schema, so that every property given has a valid type;
    3. the plugin's own preprocessor, if any;
    4. ``config`` against the full schema, and every override's config
       merged on top of ``config`` against the full schema. The decoded
       override config is reduced back to the keys the override set.

    It returns ``{"config": ..., "overrides": [...]}``.
    """
    schema = plugin.config_schema

    async def preprocess(options: PluginOptions) -> PluginOptions:
        basic_validation = validate(BASIC_PLUGIN_STRUCTURE_SCHEMA, options)
        if basic_validation is not None:
            raise strict_validation_error_to_config_validation_error(basic_validation)

        partial_schema = deep_partial(schema) if schema is not None else None

        if options.get("config"):
            partial_config_validation = validate(partial_schema, options["config"])
            if partial_config_validation is not None:
                raise strict_validation_error_to_config_validation_error(partial_config_validation)

        for override in options.get("overrides") or []:
            partial_override_validation = validate(partial_schema, override.get("config") or {})
            if partial_override_validation is not None:
                raise strict_validation_error_to_config_validation_error(partial_override_validation)

        if custom_preprocessor is not None:
            options = await custom_preprocessor(options)

        decoded_config: Any = {}
        decoded_overrides: List[Dict[str, Any]] = []

        if options.get("config") is not None:
            decoded_config = (
                decode_and_validate_strict(schema, options["config"]) if schema is not None else options["config"]
            )
            if isinstance(decoded_config, StrictValidationError):
                raise strict_validation_error_to_config_validation_error(decoded_config)

        for override in options.get("overrides") or []:
            override_config = override.get("config") or {}
            merged_with_base = merge_config(options.get("config") or {}, override_config)
            decoded_override_config = (
                decode_and_validate_strict(schema, merged_with_base) if schema is not None else merged_with_base
            )
            if isinstance(decoded_override_config, StrictValidationError):
                raise strict_validation_error_to_config_validation_error(decoded_override_config)

            decoded_overrides.append({
                **override,
                "config": deep_key_intersect(decoded_override_config, override_config),
            })

        return {
            "config": decoded_config,
            "overrides": decoded_overrides,
        }

    return preprocess


async def reply_to(channel: Any, content: str) -> Any:
    """Send ``content`` to a channel, or respond to it if ``channel`` is a slash command context."""
    if isinstance(channel, discord.ApplicationContext):
        return await channel.respond(content)
    return await channel.send(content)


async def send_success_message(plugin_data: PluginData, channel: Any, body: str) -> Any:
    guild_config = guild_config_of(plugin_data)
    emoji = (guild_config.success_emoji if guild_config else None) or DEFAULT_SUCCESS_EMOJI
    return await reply_to(channel, success_message(body, emoji))


async def send_error_message(plugin_data: PluginData, channel: Any, body: str) -> Any:
    guild_config = guild_config_of(plugin_data)
    emoji = (guild_config.error_emoji if guild_config else None) or DEFAULT_ERROR_EMOJI
    return await reply_to(channel, error_message(body, emoji))


def get_base_url(plugin_data: PluginData) -> str | None:
    return plugin_data.get_manager().config_store.global_config.url


def is_owner(plugin_data: PluginData, user_id: int | str) -> bool:
    owners = plugin_data.get_manager().config_store.global_config.owners
    if not owners:
        return False

    return str(user_id) in owners


def is_owner_pre_filter(ctx: discord.ApplicationContext) -> bool:
    """Command check passing only for bot owners. Use with ``commands.check``."""
    cog = ctx.cog
    if not isinstance(cog, ZeppelinPlugin):
        return False

    plugin_data = cog.get_plugin_data(ctx.guild.id if ctx.guild else None)
    if plugin_data is None:
        return False

    return is_owner(plugin_data, ctx.author.id)


def map_to_public_fn(input_fn: Callable[..., Any]) -> Callable[[PluginData], Callable[..., Any]]:
    """Create a public plugin function out of a function taking ``plugin_data`` as its first parameter."""
    def mapper(plugin_data: PluginData) -> Callable[..., Any]:
        return functools.partial(input_fn, plugin_data)

    return mapper
