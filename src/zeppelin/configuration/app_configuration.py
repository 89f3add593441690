from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict, List
import yaml

from zeppelin.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_DIR = Path("./config").resolve()
GLOBAL_CONFIG_PATH = CONFIG_DIR / "global.yml"
GUILD_CONFIG_DIR = CONFIG_DIR / "guilds"


class YamlConfigFile:
    """File-lock based accessor around a single YAML configuration file.

    The class caches the mapping stored in ``config_path`` and exposes
    dictionary-like access helpers. Uses fcntl file locks for safe
    concurrent access across processes.
    """

    def __init__(self, config_path: Path, *, missing_ok: bool = False) -> None:
        self.config_path = config_path
        self.missing_ok = missing_ok
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            if self.missing_ok:
                logger.debug("[CONFIGURATION] Config file %s not found, using empty config.", self.config_path)
            else:
                logger.error("[CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.error("[CONFIGURATION] Config %s must contain a mapping, got %s", self.config_path, type(data).__name__)
            return {}
        return data

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping.

        Callers should not mutate it; use get(...) or the convenience
        properties instead.
        """
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    @property
    def plugins(self) -> Dict[str, Any]:
        """Return the ``plugins`` block: plugin name to raw plugin options."""
        value = self._data.get("plugins") or {}
        return value if isinstance(value, dict) else {}


class GlobalConfig(YamlConfigFile):
    """Bot-wide configuration stored in ``config/global.yml``."""

    @property
    def owners(self) -> List[str]:
        """Return the bot owner user ids as strings (empty if unset)."""
        value = self._data.get("owners") or []
        if not isinstance(value, list):
            return []
        return [str(owner) for owner in value]

    @property
    def url(self) -> str | None:
        value = self._data.get("url")
        return str(value) if value else None


class GuildConfig(YamlConfigFile):
    """Per-guild configuration stored in ``config/guilds/<guild_id>.yml``."""

    def __init__(self, guild_id: int, config_path: Path) -> None:
        self.guild_id = guild_id
        super().__init__(config_path, missing_ok=True)

    @property
    def levels(self) -> Dict[str, int]:
        """Return the permission level table keyed by user or role id."""
        value = self._data.get("levels") or {}
        if not isinstance(value, dict):
            return {}

        levels: Dict[str, int] = {}
        for key, level in value.items():
            try:
                levels[str(key)] = int(level)
            except (TypeError, ValueError):
                logger.warning("[CONFIGURATION] Ignoring invalid level %r for %s in guild %s", level, key, self.guild_id)
        return levels

    @property
    def success_emoji(self) -> str | None:
        return self._data.get("success_emoji") or None

    @property
    def error_emoji(self) -> str | None:
        return self._data.get("error_emoji") or None


class ConfigStore:
    """Loads the global config and guild configs from the config directory."""

    def __init__(self, config_dir: Path = CONFIG_DIR) -> None:
        self.config_dir = config_dir
        self.global_config = GlobalConfig(config_dir / GLOBAL_CONFIG_PATH.name, missing_ok=True)

    def reload_global_config(self) -> GlobalConfig:
        self.global_config.reload()
        return self.global_config

    def get_guild_config(self, guild_id: int) -> GuildConfig:
        """Read the guild's config fresh from disk."""
        path = self.config_dir / GUILD_CONFIG_DIR.name / f"{guild_id}.yml"
        return GuildConfig(guild_id, path)
