"""
Plugin config resolution: base config plus matching overrides.

An override is a mapping of criteria (``level``, ``channel``, ``category``,
``user``, ``role``, ``all``, ``any``, ``not``, ``extra``) and a ``config``
block. When every criterion of an override matches the current context,
its ``config`` is deep-merged on top of the base config. Overrides are
applied in order, so later overrides win.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

import discord

from zeppelin.util.logger import get_logger

logger = get_logger("config_manager")

CRITERIA_KEYS = ("level", "channel", "category", "user", "role", "all", "any", "not", "extra")

LEVEL_CRITERIA_PATTERN = re.compile(r"^\s*(>=|<=|>|<|=|!)?\s*(-?\d+)\s*$")


def merge_config(base: Any, override: Any) -> Any:
    """
    Deep-merge ``override`` on top of ``base`` and return a new value.

    Mappings merge key by key; any other value (lists included) in
    ``override`` replaces the one in ``base``.
    """
    if not isinstance(base, Mapping) or not isinstance(override, Mapping):
        return copy.deepcopy(override)

    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        if key in merged and isinstance(merged[key], Mapping) and isinstance(value, Mapping):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def deep_key_intersect(decoded: Any, keys_source: Any) -> Any:
    """
    Keep only the keys of ``decoded`` that also appear in ``keys_source``, recursively.

    Used to reduce a fully decoded override config back to the keys the
    override actually set, while keeping the decoded values.
    """
    if not isinstance(decoded, Mapping) or not isinstance(keys_source, Mapping):
        return decoded

    result = {}
    for key, value in decoded.items():
        if key not in keys_source:
            continue
        result[key] = deep_key_intersect(value, keys_source[key])
    return result


@dataclass
class MatchParams:
    """Context against which override criteria are evaluated."""
    level: Optional[int] = None
    user_id: Optional[str] = None
    channel_id: Optional[str] = None
    category_id: Optional[str] = None
    member_roles: List[str] = field(default_factory=list)
    member: Any = None
    channel: Any = None
    message: Any = None
    extra: Any = None


def _as_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    return [str(value)]


def level_matches(criteria: Any, level: int) -> bool:
    """Evaluate a level criterion such as ``">=50"`` (or a list of them, any match)."""
    for entry in _as_list(criteria):
        match = LEVEL_CRITERIA_PATTERN.match(entry)
        if match is None:
            logger.warning("[CONFIG] Invalid level criterion %r", entry)
            continue

        op, value = match.group(1) or "=", int(match.group(2))
        if (
            (op == ">=" and level >= value)
            or (op == "<=" and level <= value)
            or (op == ">" and level > value)
            or (op == "<" and level < value)
            or (op == "=" and level == value)
            or (op == "!" and level != value)
        ):
            return True
    return False


def evaluate_override_criteria(criteria: Mapping[str, Any], params: MatchParams) -> bool:
    """
    Return True if every criterion present in ``criteria`` matches ``params``.

    Criteria without any recognised key never match.
    """
    present = [key for key in CRITERIA_KEYS if criteria.get(key) is not None and key != "extra"]
    if not present:
        return False

    for key in present:
        value = criteria[key]

        if key == "level":
            if params.level is None or not level_matches(value, params.level):
                return False
        elif key == "channel":
            if params.channel_id is None or str(params.channel_id) not in _as_list(value):
                return False
        elif key == "category":
            if params.category_id is None or str(params.category_id) not in _as_list(value):
                return False
        elif key == "user":
            if params.user_id is None or str(params.user_id) not in _as_list(value):
                return False
        elif key == "role":
            roles = {str(r) for r in params.member_roles}
            if not all(role in roles for role in _as_list(value)):
                return False
        elif key == "all":
            if not all(evaluate_override_criteria(sub, params) for sub in value):
                return False
        elif key == "any":
            if not any(evaluate_override_criteria(sub, params) for sub in value):
                return False
        elif key == "not":
            if evaluate_override_criteria(value, params):
                return False

    return True


class PluginConfigManager:
    """Holds a plugin's decoded config and overrides and resolves the effective config."""

    def __init__(
        self,
        config: Dict[str, Any],
        overrides: List[Dict[str, Any]],
        level_resolver: Callable[[discord.Member], int] | None = None,
    ) -> None:
        self.config = config
        self.overrides = overrides
        self.level_resolver = level_resolver

    def get(self) -> Dict[str, Any]:
        """Return the base config, ignoring overrides."""
        return self.config

    def get_matching_config(self, params: MatchParams | None = None) -> Dict[str, Any]:
        """Return the base config merged with every override matching ``params``."""
        params = self.complete_match_params(params or MatchParams())

        config = self.config
        for override in self.overrides:
            if evaluate_override_criteria(override, params):
                config = merge_config(config, override.get("config") or {})
        return config

    def get_for_member(self, member: discord.Member, channel: Any = None) -> Dict[str, Any]:
        return self.get_matching_config(MatchParams(member=member, channel=channel))

    def get_for_message(self, message: discord.Message) -> Dict[str, Any]:
        return self.get_matching_config(MatchParams(message=message))

    def get_for_channel(self, channel: Any) -> Dict[str, Any]:
        return self.get_matching_config(MatchParams(channel=channel))

    def complete_match_params(self, params: MatchParams) -> MatchParams:
        """Fill the id fields of ``params`` from its member, channel and message objects."""
        resolved = copy.copy(params)

        if resolved.message is not None:
            if resolved.member is None and isinstance(resolved.message.author, discord.Member):
                resolved.member = resolved.message.author
            if resolved.user_id is None:
                resolved.user_id = str(resolved.message.author.id)
            if resolved.channel is None:
                resolved.channel = resolved.message.channel

        if resolved.member is not None:
            if resolved.user_id is None:
                resolved.user_id = str(resolved.member.id)
            if not resolved.member_roles:
                resolved.member_roles = [str(role.id) for role in getattr(resolved.member, "roles", [])]
            if resolved.level is None and self.level_resolver is not None:
                resolved.level = self.level_resolver(resolved.member)

        if resolved.channel is not None:
            if resolved.channel_id is None:
                resolved.channel_id = str(resolved.channel.id)
            if resolved.category_id is None:
                category_id = getattr(resolved.channel, "category_id", None)
                parent = getattr(resolved.channel, "parent", None)
                if category_id is None and parent is not None:
                    category_id = getattr(parent, "category_id", None)
                if category_id is not None:
                    resolved.category_id = str(category_id)

        return resolved
