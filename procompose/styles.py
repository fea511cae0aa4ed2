"""Colours, styles and themes of the terminal user interface."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import IO, Any

import yaml
from PIL import ImageColor

from . import config

log = logging.getLogger(__name__)

CUSTOM_STYLE_NAME = "Custom Style"
DEFAULT_STYLE_NAME = "Default"
THEME_FILE_PATTERN = "*-theme.yaml"
THEMES_DIR = Path(__file__).resolve().parent / "themes"


class ThemeNotFoundError(FileNotFoundError):
    """The custom theme file does not exist."""


@dataclass(frozen=True)
class Color:
    """A colour given by name or as ``#rrggbb``."""

    value: str = ""

    DEFAULT = "default"
    TRANSPARENT = "-"

    def is_hex(self) -> bool:
        return len(self.value) == 7 and self.value.startswith("#")

    def rgb(self) -> tuple[int, int, int] | None:
        """The red, green and blue parts, or None for the terminal default."""
        if self.value == self.DEFAULT:
            return None
        try:
            parts = ImageColor.getrgb(self.value)
        except ValueError:
            return None
        return parts[0], parts[1], parts[2]

    def __str__(self) -> str:
        if self.is_hex():
            return self.value
        if self.value == self.DEFAULT:
            return self.TRANSPARENT
        parts = self.rgb()
        if parts is None:
            return self.TRANSPARENT
        return "#{:02x}{:02x}{:02x}".format(*parts)


def _color(name: str, key: str):
    return field(default=Color(name), metadata={"yaml": key})


@dataclass
class Body:
    fg_color: Color = _color("white", "fgColor")
    bg_color: Color = _color("black", "bgColor")
    secondary_text_color: Color = _color("yellow", "secondaryTextColor")
    tertiary_text_color: Color = _color("green", "tertiaryTextColor")
    border_color: Color = _color("white", "borderColor")


@dataclass
class StatTable:
    key_fg_color: Color = _color("yellow", "keyFgColor")
    value_fg_color: Color = _color("white", "valueFgColor")
    bg_color: Color = _color("black", "bgColor")
    logo_color: Color = _color("yellow", "logoColor")


@dataclass
class ProcTable:
    fg_color: Color = _color("lightskyblue", "fgColor")
    fg_warning: Color = _color("yellow", "fgWarning")
    fg_pending: Color = _color("grey", "fgPending")
    fg_completed: Color = _color("lightgreen", "fgCompleted")
    fg_error: Color = _color("red", "fgError")
    bg_color: Color = _color("black", "bgColor")
    header_fg_color: Color = _color("white", "headerFgColor")


@dataclass
class Help:
    key_color: Color = _color("white", "keyColor")
    fg_color: Color = _color("black", "fgColor")
    hl_color: Color = _color("green", "hlColor")
    fg_category_color: Color = _color("lightskyblue", "categoryFgColor")


@dataclass
class Dialog:
    fg_color: Color = _color("cadetblue", "fgColor")
    bg_color: Color = _color("black", "bgColor")
    contrast_bg_color: Color = _color("", "contrastBgColor")
    attention_bg_color: Color = _color("", "attentionBgColor")
    button_fg_color: Color = _color("black", "buttonFgColor")
    button_bg_color: Color = _color("lightskyblue", "buttonBgColor")
    button_focus_fg_color: Color = _color("black", "buttonFocusFgColor")
    button_focus_bg_color: Color = _color("dodgerblue", "buttonFocusBgColor")
    label_fg_color: Color = _color("yellow", "labelFgColor")
    field_fg_color: Color = _color("black", "fieldFgColor")
    field_bg_color: Color = _color("lightskyblue", "fieldBgColor")


@dataclass
class Style:
    name: str = DEFAULT_STYLE_NAME
    body: Body = field(default_factory=Body)
    stat_table: StatTable = field(default_factory=StatTable, metadata={"yaml": "stat_table"})
    proc_table: ProcTable = field(default_factory=ProcTable, metadata={"yaml": "proc_table"})
    help: Help = field(default_factory=Help)
    dialog: Dialog = field(default_factory=Dialog)


def _key(f) -> str:
    return f.metadata.get("yaml", f.name)


def _overlay(obj: Any, data: dict) -> None:
    for f in fields(obj):
        key = _key(f)
        if key not in data:
            continue
        value = data[key]
        current = getattr(obj, f.name)
        if isinstance(current, Color):
            setattr(obj, f.name, Color("" if value is None else str(value)))
        elif is_dataclass(current):
            if value is None:
                continue
            if not isinstance(value, dict):
                raise ValueError(f"{key}: expected a mapping, got {value!r}")
            _overlay(current, value)
        else:
            setattr(obj, f.name, "" if value is None else str(value))


def _to_mapping(obj: Any) -> dict:
    result = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if isinstance(value, Color):
            result[_key(f)] = value.value
        elif is_dataclass(value):
            result[_key(f)] = _to_mapping(value)
        else:
            result[_key(f)] = value
    return result


def _clear(obj: Any) -> None:
    for f in fields(obj):
        value = getattr(obj, f.name)
        if isinstance(value, Color):
            setattr(obj, f.name, Color(""))
        elif is_dataclass(value):
            _clear(value)
        else:
            setattr(obj, f.name, "")


@dataclass
class Styles:
    """A complete set of styles."""

    style: Style = field(default_factory=Style)

    @property
    def name(self) -> str:
        return self.style.name

    def overlay(self, data: Any) -> None:
        """Apply a parsed YAML document on top of the current values."""
        if data is None:
            return
        if not isinstance(data, dict):
            raise ValueError(f"expected a mapping, got {data!r}")
        _overlay(self, data)

    def load(self, path: str | Path) -> None:
        """Overlay the styles stored in the YAML file at ``path``."""
        with open(path, encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
        self.overlay(data)

    def to_dict(self) -> dict:
        return _to_mapping(self)

    def dump(self, stream: IO[str]) -> None:
        """Write the styles as YAML."""
        yaml.safe_dump(self.to_dict(), stream, sort_keys=False, allow_unicode=True)


def _blank_styles() -> Styles:
    styles = Styles()
    _clear(styles)
    return styles


class StyleListener(ABC):
    """Told when the active styles change."""

    @abstractmethod
    def styles_changed(self, styles: Styles) -> None:
        """Called with the newly active styles."""


_LOAD_ERRORS = (OSError, yaml.YAMLError, ValueError)


class Themes:
    """The known themes and the one currently active."""

    def __init__(
        self,
        themes_dir: str | Path | None = None,
        custom_theme_path: str | Path | None = None,
    ):
        self._custom_path = custom_theme_path
        self._styles: list[Styles] = []
        self._active = Styles()
        self._listeners: list[StyleListener] = []
        directory = Path(themes_dir) if themes_dir is not None else THEMES_DIR
        for path in sorted(directory.glob(THEME_FILE_PATTERN)):
            styles = _blank_styles()
            try:
                styles.load(path)
            except _LOAD_ERRORS as exc:
                log.error("Error parsing theme %s: %s", path, exc)
                continue
            self._styles.append(styles)
        try:
            self._styles.append(self._load_from_file())
        except _LOAD_ERRORS:
            pass

    @property
    def custom_theme_path(self) -> str:
        if self._custom_path is not None:
            return str(self._custom_path)
        return config.get_themes_path()

    @property
    def active_styles(self) -> Styles:
        return self._active

    def _load_from_file(self) -> Styles:
        path = self.custom_theme_path
        if not path or not Path(path).is_file():
            raise ThemeNotFoundError("custom theme not found")
        styles = Styles()
        styles.load(path)
        styles.style.name = CUSTOM_STYLE_NAME
        return styles

    def select_styles(self, name: str) -> None:
        """Make the theme called ``name`` active."""
        if name == CUSTOM_STYLE_NAME:
            self.select_styles_from_file()
            return
        for styles in self._styles:
            if styles.style.name == name:
                self._active = styles
                self._fire_styles_changed()
                return
        log.error("Theme %s not found", name)

    def select_styles_from_file(self) -> None:
        """Make the custom theme file active."""
        try:
            custom = self._load_from_file()
        except _LOAD_ERRORS as exc:
            log.error("Failed to load custom theme from %s: %s", self.custom_theme_path, exc)
            return
        self._active = custom
        self._fire_styles_changed()

    def get_theme_names(self) -> list[str]:
        return sorted(styles.style.name for styles in self._styles)

    def add_listener(self, listener: StyleListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StyleListener) -> None:
        for index, known in enumerate(self._listeners):
            if known is listener:
                del self._listeners[index]
                return

    def _fire_styles_changed(self) -> None:
        for listener in list(self._listeners):
            listener.styles_changed(self._active)