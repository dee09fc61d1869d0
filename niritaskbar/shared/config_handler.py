import copy
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Pattern, Tuple, Union

import toml

from niritaskbar.errors import ConfigError
from niritaskbar.shared import config_template
from niritaskbar.shared.path_handler import PathHandler

logger = logging.getLogger(__name__)


class ConfigHandler:
    """
    Loads config.toml and merges in any missing defaults.

    The defaults come from config_template, whose `*_hint` keys document each
    setting and are never written to the user's file.
    """

    def __init__(
        self,
        config_file: Optional[Union[str, Path]] = None,
        default_config: Optional[Dict[str, Any]] = None,
    ):
        self.config_file = (
            Path(config_file) if config_file else PathHandler().get_config_file()
        )
        self.default_config = (
            default_config
            if default_config is not None
            else config_template.default_config
        )
        self._load_successful: bool = False
        self.config_data: Dict[str, Any] = self.load_config()

    def _strip_hints(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Recursively removes keys ending with '_hint'.
        Args:
            data: The configuration dictionary, typically self.default_config.
        Returns:
            A deep copy containing only configuration values.
        """
        stripped_data = {}
        for key, value in data.items():
            if key.endswith("_hint"):
                continue
            if isinstance(value, dict):
                stripped_data[key] = self._strip_hints(value)
            else:
                stripped_data[key] = copy.deepcopy(value)
        return stripped_data

    @property
    def default_config_stripped(self) -> Dict[str, Any]:
        return self._strip_hints(self.default_config)

    def _recursive_merge(
        self,
        user_config: Dict[str, Any],
        default_config: Dict[str, Any],
    ) -> bool:
        """
        Recursively merges missing keys from `default_config` into `user_config`.
        Returns:
            True if any key was added.
        """
        write_back_needed = False
        for key, default_value in default_config.items():
            if key not in user_config:
                user_config[key] = default_value
                write_back_needed = True
            elif isinstance(default_value, dict) and isinstance(
                user_config.get(key), dict
            ):
                if self._recursive_merge(user_config[key], default_value):
                    write_back_needed = True
        return write_back_needed

    def save_config(self) -> None:
        """Writes self.config_data to the TOML file."""
        if not self._load_successful:
            logger.warning(
                "Skipping configuration save: config.toml failed to load. Please fix it manually."
            )
            return
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w") as f:
                toml.dump(self.config_data, f)
            logger.info(f"Configuration saved to {self.config_file}.")
        except OSError as e:
            logger.error(f"Failed to save configuration to {self.config_file}: {e}")

    def load_config(self) -> Dict[str, Any]:
        """
        Loads the configuration from file, or uses defaults if missing/corrupt.
        Returns:
            The loaded and merged configuration dictionary.
        """
        config_from_file: Dict[str, Any] = {}
        file_must_be_created = not self.config_file.exists()
        if file_must_be_created:
            logger.info("Config file is missing. Will apply defaults and create.")
            self._load_successful = True
        else:
            try:
                with open(self.config_file, "r") as f:
                    config_from_file = toml.load(f)
                self._load_successful = True
                logger.debug("Existing config.toml loaded successfully.")
            except (OSError, toml.TomlDecodeError) as e:
                logger.error(
                    f"Failed to load {self.config_file}: {e}. Using default configuration."
                )
                self._load_successful = False
                config_from_file = {}
        self._recursive_merge(config_from_file, self.default_config_stripped)
        if file_must_be_created:
            self.config_data = config_from_file
            self.save_config()
        return config_from_file

    def taskbar_config(self) -> "TaskbarConfig":
        return TaskbarConfig.from_dict(self.config_data)


@dataclass(frozen=True)
class AppRule:
    pattern: Pattern[str]
    css_class: str


@dataclass(frozen=True)
class NotificationSettings:
    enabled: bool = True
    use_desktop_entry: bool = True
    use_fuzzy_matching: bool = False
    map_app_ids: Dict[str, str] = field(default_factory=dict)
    cache_expiry_seconds: float = 300.0
    cache_sweep_interval_seconds: float = 60.0

    def map_app_id(self, desktop_entry: str) -> str:
        return self.map_app_ids.get(desktop_entry, desktop_entry)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotificationSettings":
        map_app_ids = data.get("map_app_ids") or {}
        if not isinstance(map_app_ids, dict):
            raise ConfigError("notifications.map_app_ids must be a table")
        try:
            return cls(
                enabled=bool(data.get("enabled", True)),
                use_desktop_entry=bool(data.get("use_desktop_entry", True)),
                use_fuzzy_matching=bool(data.get("use_fuzzy_matching", False)),
                map_app_ids={str(k): str(v) for k, v in map_app_ids.items()},
                cache_expiry_seconds=float(data.get("cache_expiry_seconds", 300)),
                cache_sweep_interval_seconds=float(
                    data.get("cache_sweep_interval_seconds", 60)
                ),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid notifications setting: {e}") from e


def _compile_app_rules(apps: Dict[str, Any]) -> Dict[str, Tuple[AppRule, ...]]:
    rules = {}
    for app_id, entries in apps.items():
        if isinstance(entries, dict):
            entries = [entries]
        if not isinstance(entries, list):
            raise ConfigError(f"apps.{app_id} must be a list of tables")
        compiled = []
        for entry in entries:
            try:
                compiled.append(
                    AppRule(pattern=re.compile(entry["match"]), css_class=entry["class"])
                )
            except KeyError as e:
                raise ConfigError(f"apps.{app_id} rule is missing {e}") from e
            except (re.error, TypeError) as e:
                raise ConfigError(f"apps.{app_id} has an invalid match: {e}") from e
        rules[app_id] = tuple(compiled)
    return rules


@dataclass(frozen=True)
class TaskbarConfig:
    apps: Dict[str, Tuple[AppRule, ...]] = field(default_factory=dict)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    only_output: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskbarConfig":
        output = data.get("output") or {}
        return cls(
            apps=_compile_app_rules(data.get("apps") or {}),
            notifications=NotificationSettings.from_dict(
                data.get("notifications") or {}
            ),
            only_output=output.get("only") or None,
        )

    def app_classes(self, app_id: str) -> List[str]:
        """Every class the given application might carry."""
        return [rule.css_class for rule in self.apps.get(app_id, ())]

    def app_matches(self, app_id: str, title: str) -> List[str]:
        """The classes whose title pattern matches `title`."""
        return [
            rule.css_class
            for rule in self.apps.get(app_id, ())
            if rule.pattern.search(title)
        ]
