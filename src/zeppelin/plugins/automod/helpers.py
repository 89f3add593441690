"""
Building blocks for automod triggers and actions.

A trigger inspects an :class:`AutomodContext` and returns an
:class:`AutomodTriggerMatchResult` (or None when it does not match). An
action applies the consequences of a match to every matched context.
Both are described by blueprints carrying their config schema and defaults.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import discord


@dataclass
class AutomodContext:
    """One event evaluated by automod."""
    timestamp: float
    actioned: bool = False
    user: Optional[discord.abc.User] = None
    message: Optional[discord.Message] = None
    member: Optional[discord.Member] = None


@dataclass
class AutomodTriggerMatchResult:
    """
    Outcome of a trigger that matched.

    Attributes:
        extra_contexts: Further contexts the actions should apply to.
        extra: Trigger-specific details used to render match information.
        silent_clean: Only clean the matched messages; skip every other action.
        summary: Short description of the match.
        full_summary: Description of the match including the rule name.
    """
    extra_contexts: List[AutomodContext] = field(default_factory=list)
    extra: Any = None
    silent_clean: bool = False
    summary: Optional[str] = None
    full_summary: Optional[str] = None


@dataclass(frozen=True)
class AutomodTriggerBlueprint:
    """
    ``match`` and ``render_match_information`` are called with keyword
    arguments (``rule_name``, ``plugin_data``, ``trigger_config`` and
    ``context`` or ``contexts``/``match_result`` respectively) and may be
    plain or coroutine functions.
    """
    config_schema: Dict[str, Any]
    default_config: Dict[str, Any]
    match: Callable[..., Any]
    render_match_information: Callable[..., Any]


@dataclass(frozen=True)
class AutomodActionBlueprint:
    """``apply`` receives ``rule_name``, ``plugin_data``, ``contexts``, ``action_config`` and ``match_result``."""
    config_schema: Dict[str, Any]
    default_config: Any
    apply: Callable[..., Any]


def automod_trigger(*args: AutomodTriggerBlueprint) -> Any:
    """
    Declare a trigger blueprint.

    Called with a blueprint, returns it unchanged. Called without arguments,
    returns this function so that ``automod_trigger()(blueprint)`` works too.
    """
    if args:
        return args[0]
    return automod_trigger


def automod_action(blueprint: AutomodActionBlueprint) -> AutomodActionBlueprint:
    return blueprint


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def unique_messages(contexts: List[AutomodContext]) -> List[discord.Message]:
    """Messages of ``contexts``, without duplicates, in order."""
    seen = set()
    messages = []
    for context in contexts:
        if context.message is None or context.message.id in seen:
            continue
        seen.add(context.message.id)
        messages.append(context.message)
    return messages
