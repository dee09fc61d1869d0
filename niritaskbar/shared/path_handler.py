import os
from pathlib import Path
from typing import Optional

APP_NAME = "niritaskbar"

# (environment variable, fallback relative to $HOME)
XDG_CONFIG = ("XDG_CONFIG_HOME", ".config")
XDG_STATE = ("XDG_STATE_HOME", ".local/state")


class PathHandler:
    """
    Where niritaskbar keeps its files, following the XDG base directories.
    Directories are created on demand.
    """

    def __init__(self, app_name: str = APP_NAME, home: Optional[Path] = None):
        self.app_name = app_name
        self.home = home or Path.home()

    def _app_dir(self, base: tuple) -> Path:
        env_var, fallback = base
        root = os.getenv(env_var)
        app_dir = (Path(root) if root else self.home / fallback) / self.app_name
        app_dir.mkdir(parents=True, exist_ok=True)
        return app_dir

    def get_config_dir(self) -> Path:
        return self._app_dir(XDG_CONFIG)

    def get_config_file(self) -> Path:
        return self.get_config_dir() / "config.toml"

    def get_log_file(self) -> Path:
        return self._app_dir(XDG_STATE) / f"{self.app_name}.log"
