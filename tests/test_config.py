import os
import tempfile

import pytest

from procompose import config
from procompose.config import (
    Flags,
    Settings,
    Sort,
    create_proc_comp_home,
    get_config_default,
    get_log_file_path,
    get_settings_path,
    get_short_cuts_path,
    get_themes_path,
    get_unix_socket_path,
    is_log_selection_on,
)

ENV_NAMES = [
    "PC_PORT_NUM",
    "PC_DISABLE_TUI",
    "PC_NO_SERVER",
    "PC_READ_ONLY",
    "PC_LOG_FILE",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def config_home(monkeypatch, tmp_path):
    monkeypatch.setenv("PROC_COMP_CONFIG", str(tmp_path))
    return tmp_path


def test_log_file_path_from_env(monkeypatch):
    monkeypatch.setenv("PC_LOG_FILE", "/some/where.log")
    assert get_log_file_path() == "/some/where.log"


def test_log_file_path_default(clean_env):
    path = get_log_file_path()
    assert os.path.dirname(path) == tempfile.gettempdir()
    assert os.path.basename(path).startswith("process-compose")
    assert path.endswith(".log")


def test_config_default(monkeypatch):
    monkeypatch.setenv("PC_CONFIG_FILES", "a.yaml,b.yaml")
    assert get_config_default() == ["a.yaml", "b.yaml"]
    monkeypatch.delenv("PC_CONFIG_FILES")
    assert get_config_default() == []


def test_unix_socket_path(monkeypatch):
    monkeypatch.delenv("PC_SOCKET_PATH", raising=False)
    assert get_unix_socket_path().endswith(f"process-compose-{os.getpid()}.sock")
    monkeypatch.setenv("PC_SOCKET_PATH", "/run/pc.sock")
    assert get_unix_socket_path() == "/run/pc.sock"


def test_flags_defaults(clean_env):
    flags = Flags()
    assert flags.port_num == config.DEFAULT_PORT_NUM == 8080
    assert flags.address == "localhost"
    assert flags.log_length == 1000
    assert flags.sort_column == "NAME"
    assert flags.pc_theme == "Default"
    assert flags.is_tui_enabled is True
    assert flags.no_server is False
    assert flags.is_read_only_mode is False


def test_flags_from_env(clean_env):
    clean_env.setenv("PC_PORT_NUM", "9000")
    clean_env.setenv("PC_DISABLE_TUI", "true")
    clean_env.setenv("PC_NO_SERVER", "")
    clean_env.setenv("PC_READ_ONLY", "")
    flags = Flags()
    assert flags.port_num == 9000
    assert flags.is_tui_enabled is False
    assert flags.no_server is True
    assert flags.is_read_only_mode is True


def test_flags_tui_false_value(clean_env):
    clean_env.setenv("PC_DISABLE_TUI", "FALSE")
    assert Flags().is_tui_enabled is True


def test_flags_invalid_port(clean_env):
    clean_env.setenv("PC_PORT_NUM", "abc")
    with pytest.raises(ValueError):
        Flags()


def test_create_proc_comp_home_env(config_home):
    assert create_proc_comp_home() == str(config_home)


def test_paths_in_config_home(config_home):
    assert get_themes_path() == os.path.join(str(config_home), "theme.yaml")
    assert get_settings_path() == os.path.join(str(config_home), "settings.yaml")


def test_short_cuts_path(config_home):
    assert get_short_cuts_path() == ""
    (config_home / "shortcuts.yml").write_text("{}")
    assert get_short_cuts_path() == os.path.join(str(config_home), "shortcuts.yml")


def test_log_selection(monkeypatch):
    monkeypatch.setenv("WAYLAND_DISPLAY", "wayland-0")
    assert is_log_selection_on() is False
    monkeypatch.delenv("WAYLAND_DISPLAY")
    assert is_log_selection_on() is True


def test_settings_load_without_file(config_home):
    assert Settings().load() == Settings(theme="Default", sort=Sort("NAME", False))


def test_settings_round_trip(config_home):
    saved = Settings(theme="Dark", sort=Sort(by="PID", is_reversed=True))
    saved.save()
    assert "isReversed: true" in (config_home / "settings.yaml").read_text()
    assert Settings().load() == saved


def test_settings_partial_file(config_home):
    (config_home / "settings.yaml").write_text("sort:\n  isReversed: true\n")
    loaded = Settings().load()
    assert loaded.theme == "Default"
    assert loaded.sort.by == "NAME"
    assert loaded.sort.is_reversed is True


def test_settings_bad_yaml_keeps_defaults(config_home):
    (config_home / "settings.yaml").write_text("theme: [unclosed\n")
    assert Settings().load() == Settings()