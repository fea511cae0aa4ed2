"""Defaults, environment settings and user settings."""

from __future__ import annotations

import getpass
import logging
import os
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import platformdirs
import yaml

log = logging.getLogger(__name__)

VERSION = "undefined"
COMMIT = "undefined"
DATE = "undefined"
CHECK_FOR_UPDATES = "false"
LICENSE = "Apache-2.0"
PROJECT_NAME = "Process Compose 🔥"
REMOTE_PROJECT_NAME = "Process Compose ⚡"

DEFAULT_REFRESH_RATE = 1.0
DEFAULT_LOG_LEVEL = "info"
DEFAULT_PORT_NUM = 8080
DEFAULT_ADDRESS = "localhost"
DEFAULT_LOG_LENGTH = 1000
DEFAULT_SORT_COLUMN = "NAME"
DEFAULT_THEME_NAME = "Default"

ENV_VAR_NAME_PORT = "PC_PORT_NUM"
ENV_VAR_NAME_TUI = "PC_DISABLE_TUI"
ENV_VAR_NAME_CONFIG = "PC_CONFIG_FILES"
ENV_VAR_NAME_NO_SERVER = "PC_NO_SERVER"
ENV_VAR_UNIX_SOCKET_PATH = "PC_SOCKET_PATH"
ENV_VAR_READ_ONLY_MODE = "PC_READ_ONLY"
LOG_PATH_ENV_VAR_NAME = "PC_LOG_FILE"

PC_CONFIG_ENV = "PROC_COMP_CONFIG"
LOG_FILE_FLAGS = os.O_CREAT | os.O_APPEND | os.O_WRONLY | os.O_TRUNC
LOG_FILE_MODE = 0o600
THEME_FILE_NAME = "theme.yaml"
SETTINGS_FILE_NAME = "settings.yaml"
CONFIG_HOME = "process-compose"

SHORTCUT_FILES = ("shortcuts.yaml", "shortcuts.yml")
CLIENT_COMMANDS = ("down", "attach", "process", "project")


def _disable_tui_default() -> bool:
    value = os.environ.get(ENV_VAR_NAME_TUI)
    return value is None or value == "" or value.lower() == "false"


def _no_server_default() -> bool:
    return ENV_VAR_NAME_NO_SERVER in os.environ


def _read_only_default() -> bool:
    return ENV_VAR_READ_ONLY_MODE in os.environ


def _port_default() -> int:
    value = os.environ.get(ENV_VAR_NAME_PORT)
    if value is None:
        return DEFAULT_PORT_NUM
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Invalid port number: {value}") from None


def _user() -> str:
    try:
        username = getpass.getuser()
    except Exception as exc:
        log.warning("Failed to retrieve user info: %s", exc)
        return ""
    return username.rsplit("\\", 1)[-1]


def _is_client() -> bool:
    return any(arg in CLIENT_COMMANDS for arg in sys.argv)


def _mode() -> str:
    return "-client" if _is_client() else ""


def get_log_file_path() -> str:
    """The log file path, from the environment or in the temp directory."""
    value = os.environ.get(LOG_PATH_ENV_VAR_NAME)
    if value is not None:
        return value
    user = _user()
    if user:
        user = "-" + user
    return os.path.join(tempfile.gettempdir(), f"process-compose{user}{_mode()}.log")


def get_config_default() -> list[str]:
    value = os.environ.get(ENV_VAR_NAME_CONFIG)
    if value is None:
        return []
    return value.split(",")


def create_proc_comp_home() -> str:
    """Return the configuration directory, creating it if needed."""
    env = os.environ.get(PC_CONFIG_ENV)
    if env:
        return env
    home = platformdirs.user_config_path(CONFIG_HOME)
    home.mkdir(mode=0o700, parents=True, exist_ok=True)
    return str(home)


def _proc_config_dir() -> str:
    env = os.environ.get(PC_CONFIG_ENV)
    if env:
        return env
    candidates = [platformdirs.user_config_path(CONFIG_HOME)]
    candidates += [
        Path(entry)
        for entry in platformdirs.site_config_dir(CONFIG_HOME, multipath=True).split(
            os.pathsep
        )
        if entry
    ]
    for candidate in candidates:
        if candidate.exists():
            return str(candidate)
    log.warning("Path not found for process compose config home")
    return ""


def get_short_cuts_path() -> str:
    home = _proc_config_dir()
    if not home:
        return ""
    for name in SHORTCUT_FILES:
        path = os.path.join(home, name)
        if os.path.exists(path):
            return path
    return ""


def get_themes_path() -> str:
    home = _proc_config_dir()
    return os.path.join(home, THEME_FILE_NAME) if home else ""


def get_settings_path() -> str:
    home = _proc_config_dir()
    return os.path.join(home, SETTINGS_FILE_NAME) if home else ""


def is_log_selection_on() -> bool:
    return "WAYLAND_DISPLAY" not in os.environ


def get_unix_socket_path() -> str:
    value = os.environ.get(ENV_VAR_UNIX_SOCKET_PATH)
    if value is not None:
        return value
    return os.path.join(tempfile.gettempdir(), f"process-compose-{os.getpid()}.sock")


@dataclass
class Flags:
    """Command line options with their defaults."""

    refresh_rate: float = DEFAULT_REFRESH_RATE
    port_num: int = field(default_factory=_port_default)
    address: str = DEFAULT_ADDRESS
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: str = field(default_factory=get_log_file_path)
    log_length: int = DEFAULT_LOG_LENGTH
    log_follow: bool = False
    log_tail_length: int = sys.maxsize
    is_tui_enabled: bool = field(default_factory=_disable_tui_default)
    command: str = ""
    write: bool = False
    no_dependencies: bool = False
    hide_disabled: bool = False
    sort_column: str = DEFAULT_SORT_COLUMN
    sort_column_changed: bool = False
    is_reverse_sort: bool = False
    no_server: bool = field(default_factory=_no_server_default)
    keep_tui_on: bool = False
    is_ordered_shut_down: bool = False
    pc_theme: str = DEFAULT_THEME_NAME
    pc_theme_changed: bool = False
    unix_socket_path: str = ""
    is_unix_socket: bool = False
    is_read_only_mode: bool = field(default_factory=_read_only_default)
    output_format: str = ""


@dataclass
class Sort:
    by: str = DEFAULT_SORT_COLUMN
    is_reversed: bool = False


@dataclass
class Settings:
    """User settings kept in the configuration directory."""

    theme: str = DEFAULT_THEME_NAME
    sort: Sort = field(default_factory=Sort)

    def load(self) -> Settings:
        """Overlay the settings file, if there is one, and return self."""
        path = get_settings_path()
        if not path or not os.path.isfile(path):
            return self
        try:
            with open(path, encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
        except OSError as exc:
            log.warning("Error reading settings file %s: %s", path, exc)
            return self
        except yaml.YAMLError as exc:
            log.warning("Error parsing settings file %s: %s", path, exc)
            return self
        if isinstance(data, dict):
            if "theme" in data:
                self.theme = str(data["theme"])
            sort = data.get("sort")
            if isinstance(sort, dict):
                if "by" in sort:
                    self.sort.by = str(sort["by"])
                if "isReversed" in sort:
                    self.sort.is_reversed = bool(sort["isReversed"])
        log.debug("Loaded settings from %s", path)
        return self

    def save(self) -> None:
        path = get_settings_path()
        document = {
            "theme": self.theme,
            "sort": {"by": self.sort.by, "isReversed": self.sort.is_reversed},
        }
        with open(path, "w", encoding="utf-8") as handle:
            yaml.safe_dump(document, handle, sort_keys=False)