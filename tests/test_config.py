"""Tests for lucarne.config."""

import logging

from lucarne.config import Config, get_config_path, load_config


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(tmp_path / "nope.toml") == Config()

    def test_default_path_under_xdg_config(self, tmp_path):
        assert get_config_path() == tmp_path / "config" / "lucarne" / "config.toml"

    def test_reads_default_location(self, tmp_path):
        path = get_config_path()
        path.parent.mkdir(parents=True)
        path.write_text("font_size = 18\n")
        assert load_config().font_size == 18

    def test_all_keys(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(
            'font_size = 14\nchrome_css = "~/chrome.css"\n'
            "default_width = 1200\ndefault_height = 800\n"
            "default_x = 10\ndefault_y = 20\n"
        )
        assert load_config(path) == Config(
            font_size=14,
            chrome_css="~/chrome.css",
            default_width=1200,
            default_height=800,
            default_x=10,
            default_y=20,
        )

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("font_size = 12\ntheme = 'dark'\n")
        assert load_config(path) == Config(font_size=12)

    def test_invalid_toml_falls_back(self, tmp_path, caplog):
        path = tmp_path / "config.toml"
        path.write_text("chrome_css = unquoted/path.css\n")
        with caplog.at_level(logging.WARNING, logger="lucarne.config"):
            assert load_config(path) == Config()
        assert "must be quoted" in caplog.text

    def test_wrong_type_falls_back(self, tmp_path, caplog):
        path = tmp_path / "config.toml"
        path.write_text('font_size = "big"\ndefault_width = 1000\n')
        with caplog.at_level(logging.WARNING, logger="lucarne.config"):
            assert load_config(path) == Config()
        assert "font_size" in caplog.text

    def test_bool_is_not_an_int(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("font_size = true\n")
        assert load_config(path) == Config()


class TestConfig:
    def test_to_dict(self):
        data = Config(font_size=16).to_dict()
        assert data["font_size"] == 16
        assert set(data) == {
            "font_size",
            "chrome_css",
            "default_width",
            "default_height",
            "default_x",
            "default_y",
        }
