"""Evaluation of automod rules against a context."""

from __future__ import annotations

from typing import Any, Dict

from zeppelin.core.plugin import PluginData
from zeppelin.plugins.automod.actions import AVAILABLE_ACTIONS
from zeppelin.plugins.automod.helpers import AutomodContext, AutomodTriggerMatchResult, maybe_await
from zeppelin.plugins.automod.triggers import AVAILABLE_TRIGGERS
from zeppelin.util.logger import get_logger

logger = get_logger("automod")

CLEAN_ACTION = "clean"


async def match_rule(
    plugin_data: PluginData, rule_name: str, rule: Dict[str, Any], context: AutomodContext
) -> AutomodTriggerMatchResult | None:
    """Return the result of the first trigger of ``rule`` that matches ``context``."""
    for trigger_item in rule["triggers"]:
        for trigger_name, trigger_config in trigger_item.items():
            blueprint = AVAILABLE_TRIGGERS[trigger_name]
            match_result = await maybe_await(blueprint.match(
                rule_name=rule_name,
                plugin_data=plugin_data,
                context=context,
                trigger_config=trigger_config,
            ))
            if match_result is None:
                continue

            contexts = [context, *match_result.extra_contexts]
            if match_result.summary is None:
                match_result.summary = await maybe_await(blueprint.render_match_information(
                    rule_name=rule_name,
                    plugin_data=plugin_data,
                    contexts=contexts,
                    trigger_config=trigger_config,
                    match_result=match_result,
                ))
            if match_result.full_summary is None:
                match_result.full_summary = f"Triggered automod rule **{rule_name}**\n{match_result.summary}"
            return match_result

    return None


async def apply_actions(
    plugin_data: PluginData,
    rule_name: str,
    rule: Dict[str, Any],
    contexts: list[AutomodContext],
    match_result: AutomodTriggerMatchResult,
) -> None:
    actions = rule["actions"]
    if match_result.silent_clean:
        actions = {CLEAN_ACTION: True}

    for action_name, action_config in actions.items():
        blueprint = AVAILABLE_ACTIONS[action_name]
        try:
            await maybe_await(blueprint.apply(
                rule_name=rule_name,
                plugin_data=plugin_data,
                contexts=contexts,
                action_config=action_config,
                match_result=match_result,
            ))
        except Exception:
            logger.exception("[AUTOMOD] Action %s of rule %s failed", action_name, rule_name)


async def run_automod(plugin_data: PluginData, context: AutomodContext, config: Dict[str, Any]) -> bool:
    """
    Evaluate ``config["rules"]`` in order against ``context``.

    A matching rule applies all of its actions to the matched contexts.
    Evaluation stops after the first matching rule unless that rule sets
    ``allow_further_rules``.

    Returns:
        bool: True if any rule matched.
    """
    is_bot = bool(context.user is not None and context.user.bot)
    matched = False

    for rule_name, rule in config["rules"].items():
        if not rule["enabled"]:
            continue
        if is_bot and not rule["affects_bots"]:
            continue

        match_result = await match_rule(plugin_data, rule_name, rule, context)
        if match_result is None:
            continue

        matched = True
        contexts = [context, *match_result.extra_contexts]
        for matched_context in contexts:
            matched_context.actioned = True

        logger.debug("[AUTOMOD] Rule %s matched in guild %s: %s", rule_name, plugin_data.guild_id, match_result.summary)
        await apply_actions(plugin_data, rule_name, rule, contexts, match_result)

        if not rule["allow_further_rules"]:
            break

    return matched
