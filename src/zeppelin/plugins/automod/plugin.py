"""
Automod plugin: rule based message moderation.

Rules live under ``config.rules``. Each rule lists triggers (the first one
that matches wins) and the actions to apply when a trigger matches::

    rules:
      no_invites:
        triggers:
          - match_invites: {}
        actions:
          clean: true
          reply: "{user} no invites please"
"""

from __future__ import annotations

import copy
import re
import time
from typing import Any, Dict

import discord
from discord.ext import commands

from zeppelin.core.config_manager import merge_config
from zeppelin.core.errors import ConfigValidationError
from zeppelin.core.plugin import PluginInfo, PluginOptions, ZeppelinPlugin
from zeppelin.plugins.automod.actions import AVAILABLE_ACTIONS
from zeppelin.plugins.automod.helpers import AutomodContext
from zeppelin.plugins.automod.run_automod import run_automod
from zeppelin.plugins.automod.triggers import AVAILABLE_TRIGGERS, compile_patterns
from zeppelin.plugins.slowmode.plugin import SlowmodePlugin
from zeppelin.util.helpers import trim_plugin_description
from zeppelin.util.logger import get_logger

logger = get_logger("automod_plugin")

TRIGGER_ITEM_SCHEMA = {
    "type": "object",
    "properties": {name: blueprint.config_schema for name, blueprint in AVAILABLE_TRIGGERS.items()},
    "additionalProperties": False,
    "minProperties": 1,
    "maxProperties": 1,
}

ACTIONS_SCHEMA = {
    "type": "object",
    "properties": {name: blueprint.config_schema for name, blueprint in AVAILABLE_ACTIONS.items()},
    "additionalProperties": False,
}

RULE_DEFAULTS = {
    "enabled": True,
    "affects_bots": False,
    "allow_further_rules": False,
}

RULE_SCHEMA = {
    "type": "object",
    "properties": {
        "enabled": {"type": "boolean", "default": True},
        "affects_bots": {"type": "boolean", "default": False},
        "allow_further_rules": {"type": "boolean", "default": False},
        "triggers": {"type": "array", "items": TRIGGER_ITEM_SCHEMA, "minItems": 1},
        "actions": ACTIONS_SCHEMA,
    },
    "required": ["triggers", "actions"],
    "additionalProperties": False,
}


def _fill_rule_defaults(rule_name: str, rule: Dict[str, Any]) -> None:
    for trigger_item in rule.get("triggers") or []:
        if not isinstance(trigger_item, dict):
            continue
        for trigger_name, trigger_config in list(trigger_item.items()):
            blueprint = AVAILABLE_TRIGGERS.get(trigger_name)
            if blueprint is None:
                continue
            filled = merge_config(blueprint.default_config, trigger_config or {})
            trigger_item[trigger_name] = filled

            if "patterns" in filled:
                try:
                    compile_patterns(filled)
                except re.error as exc:
                    raise ConfigValidationError(f"Invalid regex in automod rule '{rule_name}': {exc}") from exc

    actions = rule.get("actions")
    if not isinstance(actions, dict):
        return
    for action_name, action_config in list(actions.items()):
        blueprint = AVAILABLE_ACTIONS.get(action_name)
        if blueprint is not None and isinstance(blueprint.default_config, dict) and isinstance(action_config, dict):
            actions[action_name] = merge_config(blueprint.default_config, action_config)


async def preprocess_automod_options(options: PluginOptions) -> PluginOptions:
    """Fill rule, trigger and action defaults into every rule and reject invalid regexes."""
    options = copy.deepcopy(options)
    base_config = options.get("config")
    base_rules = base_config.get("rules") if isinstance(base_config, dict) else None
    if not isinstance(base_rules, dict):
        base_rules = {}
    configs = [base_config] + [override.get("config") for override in options.get("overrides") or []]

    for config in configs:
        if not isinstance(config, dict) or not isinstance(config.get("rules"), dict):
            continue
        for rule_name, rule in config["rules"].items():
            if not isinstance(rule, dict):
                continue
            _fill_rule_defaults(rule_name, rule)
            # Rules that only exist in an override have no base rule to inherit these from
            if config is base_config or rule_name not in base_rules:
                for key, value in RULE_DEFAULTS.items():
                    rule.setdefault(key, value)

    return options


class AutomodPlugin(ZeppelinPlugin):
    plugin_name = "automod"
    info = PluginInfo(
        pretty_name="Automod",
        description=trim_plugin_description("""
            Allows specifying automated actions in response to triggers.
            Example use cases include word filtering and invite removal.
        """),
    )

    dependencies = [SlowmodePlugin]

    config_schema = {
        "type": "object",
        "properties": {
            "rules": {"type": "object", "additionalProperties": RULE_SCHEMA},
            "is_affected": {"type": "boolean"},
        },
        "required": ["rules", "is_affected"],
        "additionalProperties": False,
    }

    default_options = {
        "config": {
            "rules": {},
            "is_affected": True,
        },
        "overrides": [
            {
                "level": ">=50",
                "config": {
                    "is_affected": False,
                },
            },
        ],
    }

    config_preprocessor = preprocess_automod_options

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message) -> None:
        if message.guild is None:
            return
        plugin_data = self.get_plugin_data(message.guild.id)
        if plugin_data is None:
            return
        if plugin_data.client.user is not None and message.author.id == plugin_data.client.user.id:
            return

        config = plugin_data.config.get_for_message(message)
        if not config["is_affected"]:
            return

        context = AutomodContext(
            timestamp=time.time(),
            user=message.author,
            message=message,
            member=message.author if isinstance(message.author, discord.Member) else None,
        )
        try:
            await run_automod(plugin_data, context, config)
        except Exception:
            logger.exception("[AUTOMOD] Error evaluating message %s", message.id)
