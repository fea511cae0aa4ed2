import io

import pytest
import yaml

from procompose.styles import (
    CUSTOM_STYLE_NAME,
    Color,
    StyleListener,
    Styles,
    Themes,
)


class Recorder(StyleListener):
    def __init__(self):
        self.seen = []

    def styles_changed(self, styles):
        self.seen.append(styles.name)


def write_theme(path, name, fg):
    path.write_text(
        yaml.safe_dump({"style": {"name": name, "body": {"fgColor": fg}}}),
        encoding="utf-8",
    )


def test_hex_color_kept_as_is():
    assert str(Color("#abcdef")) == "#abcdef"
    assert Color("#abcdef").is_hex()


def test_default_color_is_transparent():
    assert str(Color("default")) == "-"
    assert Color("default").rgb() is None


def test_unknown_color():
    assert Color("nosuchcolour").rgb() is None
    assert str(Color("nosuchcolour")) == "-"
    assert str(Color("")) == "-"


def test_named_color_value():
    assert Color("red").rgb() == (255, 0, 0)


def test_named_color_round_trip():
    for name in ("cadetblue", "lightskyblue", "dodgerblue", "grey"):
        text = str(Color(name))
        assert Color(text).is_hex()
        assert Color(text).rgb() == Color(name).rgb()


def test_default_styles():
    styles = Styles()
    assert styles.name == "Default"
    assert styles.style.body.fg_color == Color("white")
    assert styles.style.proc_table.fg_color == Color("lightskyblue")
    assert styles.style.dialog.button_focus_bg_color == Color("dodgerblue")


def test_load_overlays_values(tmp_path):
    path = tmp_path / "t.yaml"
    path.write_text(
        "style:\n  name: Mine\n  body:\n    fgColor: '#112233'\n", encoding="utf-8"
    )
    styles = Styles()
    styles.load(path)
    assert styles.name == "Mine"
    assert styles.style.body.fg_color == Color("#112233")
    assert styles.style.body.bg_color == Color("black")
    assert styles.style.help == Styles().style.help


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Styles().load(tmp_path / "none.yaml")


def test_load_invalid_yaml(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("style: [unclosed", encoding="utf-8")
    with pytest.raises(yaml.YAMLError):
        Styles().load(path)


def test_dump_round_trip(tmp_path):
    original = Styles()
    original.style.name = "Dumped"
    original.style.stat_table.logo_color = Color("#010203")
    buffer = io.StringIO()
    original.dump(buffer)
    path = tmp_path / "dump.yaml"
    path.write_text(buffer.getvalue(), encoding="utf-8")
    copy = Styles()
    copy.load(path)
    assert copy == original
    assert "stat_table" in buffer.getvalue()


def test_theme_names_sorted_with_custom(tmp_path):
    write_theme(tmp_path / "b-theme.yaml", "Zeta", "red")
    write_theme(tmp_path / "a-theme.yaml", "Alpha", "blue")
    (tmp_path / "ignored.yaml").write_text("style: {name: Ignored}", encoding="utf-8")
    custom = tmp_path / "custom.yaml"
    write_theme(custom, "Whatever", "green")
    themes = Themes(themes_dir=tmp_path, custom_theme_path=custom)
    assert themes.get_theme_names() == sorted(["Alpha", "Zeta", CUSTOM_STYLE_NAME])


def test_invalid_theme_skipped(tmp_path):
    write_theme(tmp_path / "good-theme.yaml", "Good", "red")
    (tmp_path / "bad-theme.yaml").write_text("style: [", encoding="utf-8")
    themes = Themes(themes_dir=tmp_path, custom_theme_path=tmp_path / "missing.yaml")
    assert themes.get_theme_names() == ["Good"]


def test_select_notifies_listeners(tmp_path):
    write_theme(tmp_path / "x-theme.yaml", "Xeno", "#445566")
    themes = Themes(themes_dir=tmp_path, custom_theme_path=tmp_path / "missing.yaml")
    listener = Recorder()
    themes.add_listener(listener)
    themes.select_styles("Xeno")
    assert themes.active_styles.name == "Xeno"
    assert themes.active_styles.style.body.fg_color == Color("#445566")
    assert listener.seen == ["Xeno"]
    themes.remove_listener(listener)
    themes.select_styles("Xeno")
    assert listener.seen == ["Xeno"]


def test_select_unknown_keeps_active(tmp_path):
    themes = Themes(themes_dir=tmp_path, custom_theme_path=tmp_path / "missing.yaml")
    before = themes.active_styles
    themes.select_styles("Nope")
    assert themes.active_styles is before


def test_select_custom_from_file(tmp_path):
    custom = tmp_path / "custom.yaml"
    write_theme(custom, "Ignored", "#778899")
    themes = Themes(themes_dir=tmp_path, custom_theme_path=custom)
    themes.select_styles(CUSTOM_STYLE_NAME)
    assert themes.active_styles.name == CUSTOM_STYLE_NAME
    assert themes.active_styles.style.body.fg_color == Color("#778899")
    assert themes.active_styles.style.body.bg_color == Color("black")


def test_select_custom_missing_keeps_active(tmp_path):
    themes = Themes(themes_dir=tmp_path, custom_theme_path=tmp_path / "missing.yaml")
    listener = Recorder()
    themes.add_listener(listener)
    themes.select_styles_from_file()
    assert themes.active_styles.name == "Default"
    assert listener.seen == []