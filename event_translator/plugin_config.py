"""Which plugin-command arguments are translatable.

Only known plugins/fields are extracted: everything else in a plugin's
arguments is usually an internal identifier that breaks the game when
translated.  Predefined configs cover common MZ plugins; users add or
override configs per plugin name (user wins).
"""

import json
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Optional

from .errors import PluginConfigError
from .field_pattern import FieldPatternMatcher, compile_pattern

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PluginFieldConfig:
    pattern: str                       # e.g. "QuestDatas.|ARY|.Title"
    description: Optional[str] = None
    translatable: bool = True

    def to_dict(self) -> dict:
        return {"pattern": self.pattern, "description": self.description,
                "translatable": self.translatable}


@dataclass(frozen=True)
class PluginExtractionConfig:
    plugin_name: str
    extraction_paths: tuple = ()
    enabled: bool = True
    description: Optional[str] = None

    def add_path(self, pattern: str, description: Optional[str] = None,
                 translatable: bool = True) -> "PluginExtractionConfig":
        """Return a copy with one more field pattern."""
        new_field = PluginFieldConfig(pattern, description, translatable)
        return PluginExtractionConfig(
            plugin_name=self.plugin_name,
            extraction_paths=self.extraction_paths + (new_field,),
            enabled=self.enabled,
            description=self.description,
        )

    def to_dict(self) -> dict:
        return {
            "plugin_name": self.plugin_name,
            "extraction_paths": [f.to_dict() for f in self.extraction_paths],
            "enabled": self.enabled,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data) -> "PluginExtractionConfig":
        if not isinstance(data, dict):
            raise PluginConfigError(f"plugin config must be an object, got {type(data).__name__}")
        name = data.get("plugin_name")
        if not isinstance(name, str) or not name:
            raise PluginConfigError("plugin config is missing 'plugin_name'")
        raw_paths = data.get("extraction_paths", [])
        if not isinstance(raw_paths, list):
            raise PluginConfigError(f"{name}: 'extraction_paths' must be a list")
        paths = []
        for raw in raw_paths:
            if isinstance(raw, str):
                raw = {"pattern": raw}
            if not isinstance(raw, dict) or not isinstance(raw.get("pattern"), str):
                raise PluginConfigError(f"{name}: field entry needs a string 'pattern'")
            compile_pattern(raw["pattern"])  # validate early
            paths.append(PluginFieldConfig(
                pattern=raw["pattern"],
                description=raw.get("description"),
                translatable=bool(raw.get("translatable", True)),
            ))
        return cls(
            plugin_name=name,
            extraction_paths=tuple(paths),
            enabled=bool(data.get("enabled", True)),
            description=data.get("description"),
        )


def _predefined(name: str, *fields_: str, description: Optional[str] = None):
    return PluginExtractionConfig(
        plugin_name=name,
        extraction_paths=tuple(PluginFieldConfig(f) for f in fields_),
        description=description,
    )


# MZ plugin commands (code 357): plugin name → safe argument keys.
PREDEFINED_CONFIGS = {
    cfg.plugin_name: cfg for cfg in (
        _predefined("TorigoyaMZ_NotifyMessage", "message", description="Notification message"),
        _predefined("NotifyMessage_Battle", "message", description="Battle notification message"),
        _predefined("BattleLogOutput", "message", description="Battle log message"),
        _predefined("TorigoyaMZ_NotifyMessage_CommandMessage", "message"),
        _predefined("LL_InfoPopupWIndow", "messageText"),
        _predefined("QuestSystem", "DetailNote"),
        _predefined("BalloonInBattle", "text"),
        _predefined("MNKR_CommonPopupCoreMZ", "text"),
        _predefined("DestinationWindow", "destination"),
        _predefined("_TMLogWindowMZ", "text"),
        _predefined("SoR_GabWindow", "arg1"),
        _predefined("DarkPlasma_CharacterText", "text"),
        _predefined("DTextPicture", "text"),
        _predefined("TextPicture", "text"),
        _predefined("LogWindow", "text"),
        _predefined("NUUN_SaveScreen", "AnyName"),
        _predefined("build/ARPG_Core", "Text", "SkillByName"),
    )
}


class PluginConfigStore:
    """Predefined plus user plugin configs, with compiled matchers.

    A store is never mutated after construction: ``with_user_config`` and
    ``without_user_config`` return a new store.  A batch keeps the store it
    started with while the caller publishes a new one for the next batch.
    """

    def __init__(self, user_configs=None, predefined=None):
        base = PREDEFINED_CONFIGS if predefined is None else predefined
        self._predefined = MappingProxyType(dict(base))
        self._user = MappingProxyType(
            {c.plugin_name: c for c in (user_configs or ())})
        self._matchers = MappingProxyType(self._compile_all())

    def _compile_all(self) -> dict:
        compiled = {}
        for name in self.plugin_names():
            cfg = self.get(name)
            compiled[name] = tuple(
                (f, compile_pattern(f.pattern))
                for f in cfg.extraction_paths
                if f.translatable
            )
        return compiled

    # ── Queries ─────────────────────────────────────────────────────

    def get(self, plugin_name: str) -> Optional[PluginExtractionConfig]:
        """Config for a plugin, user config first."""
        cfg = self._user.get(plugin_name)
        if cfg is None:
            cfg = self._predefined.get(plugin_name)
        return cfg

    def is_user_defined(self, plugin_name: str) -> bool:
        return plugin_name in self._user

    def plugin_names(self) -> list:
        return sorted(set(self._predefined) | set(self._user))

    def user_configs(self) -> list:
        return [self._user[n] for n in sorted(self._user)]

    def matchers(self, plugin_name: str) -> tuple:
        """(field config, matcher) pairs for translatable fields of an enabled config."""
        cfg = self.get(plugin_name)
        if cfg is None or not cfg.enabled:
            return ()
        return self._matchers.get(plugin_name, ())

    def match_field(self, plugin_name: str, steps) -> Optional[FieldPatternMatcher]:
        """First matcher of ``plugin_name`` that selects the leaf at ``steps``."""
        for _, matcher in self.matchers(plugin_name):
            if matcher.matches_steps(steps):
                return matcher
        return None

    # ── Copy-on-write updates ───────────────────────────────────────

    def with_user_config(self, config: PluginExtractionConfig) -> "PluginConfigStore":
        users = dict(self._user)
        users[config.plugin_name] = config
        return PluginConfigStore(users.values(), self._predefined)

    def without_user_config(self, plugin_name: str) -> "PluginConfigStore":
        users = {n: c for n, c in self._user.items() if n != plugin_name}
        return PluginConfigStore(users.values(), self._predefined)

    # ── Persistence ─────────────────────────────────────────────────

    @classmethod
    def load_user_configs(cls, path: str) -> "PluginConfigStore":
        """Build a store from a user config file.

        Accepts either a list of configs or ``{"plugins": [...]}``.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise PluginConfigError(f"{path}: not valid JSON ({e})") from e
        except OSError as e:
            raise PluginConfigError(f"{path}: {e}") from e

        if isinstance(data, dict):
            data = data.get("plugins")
        if not isinstance(data, list):
            raise PluginConfigError(f"{path}: expected a list of plugin configs")

        configs = [PluginExtractionConfig.from_dict(item) for item in data]
        log.info("Loaded %d user plugin configs from %s", len(configs), path)
        return cls(configs)

    def save_user_configs(self, path: str):
        data = {"plugins": [c.to_dict() for c in self.user_configs()]}
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
