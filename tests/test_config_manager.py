# tests/test_config_manager.py

import argparse
import pytest
import pytomlpp
from pathlib import Path

from scan_app import config_manager
from scan_app.config_manager import ConfigHelper, ConfigManager, generate_default_toml_content
from scan_app.exceptions import ConfigError

DEFAULT_CONFIG_FILENAME = config_manager.DEFAULT_CONFIG_FILENAME


@pytest.fixture
def isolated_env(mocker, monkeypatch, tmp_path):
    """CWD in tmp, no user config dir, no .env, no TMDB variables."""
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    mocker.patch("scan_app.config_manager.platformdirs.user_config_dir", return_value=str(tmp_path / "user_config"))
    mocker.patch("scan_app.config_manager.find_dotenv", return_value="")
    monkeypatch.delenv("TMDB_API_KEY", raising=False)
    monkeypatch.delenv("TMDB_LANGUAGE", raising=False)
    return work

def _write(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


def test_defaults_without_config_file(isolated_env):
    manager = ConfigManager()
    assert manager.config_path == (isolated_env / DEFAULT_CONFIG_FILENAME).resolve()
    assert manager.get_value('video_extensions') == [".mp4", ".mkv", ".avi"]
    assert manager.get_value('scan_interval_minutes') == 60.0
    assert manager.get_value('ignore_patterns') == ['.*', '*.partial', '*[sS]ample*']
    assert manager.get_api_key('tmdb') is None

def test_profile_overrides_default(isolated_env):
    _write(isolated_env / DEFAULT_CONFIG_FILENAME, """
[default]
video_extensions = ["MKV", "mp4"]
scan_interval_minutes = 30.0
log_level = "warning"

[nightly]
scan_interval_minutes = 1440.0
""")
    manager = ConfigManager()
    assert manager.get_value('video_extensions') == [".mkv", ".mp4"]
    assert manager.get_value('log_level') == "WARNING"
    assert manager.get_value('scan_interval_minutes') == 30.0
    assert manager.get_value('scan_interval_minutes', profile='nightly') == 1440.0
    assert manager.get_value('video_extensions', profile='nightly') == [".mkv", ".mp4"]

def test_explicit_config_path(isolated_env, tmp_path):
    custom = _write(tmp_path / "custom.toml", "[default]\nfollow_symlinks = true\n")
    manager = ConfigManager(config_path_override=custom)
    assert manager.config_path == custom.resolve()
    assert manager.get_value('follow_symlinks') is True

def test_user_config_dir_is_second_choice(isolated_env, tmp_path):
    user_dir = tmp_path / "user_config"
    user_dir.mkdir()
    _write(user_dir / DEFAULT_CONFIG_FILENAME, "[default]\ncache_enabled = false\n")
    manager = ConfigManager()
    assert manager.config_path == (user_dir / DEFAULT_CONFIG_FILENAME).resolve()
    assert manager.get_value('cache_enabled') is False

@pytest.mark.parametrize("content, message", [
    ("[default]\nlog_level = \"LOUD\"\n", "log_level"),
    ("[default]\nvideo_extensions = []\n", "video_extensions"),
    ("[default]\nfollow_symlinks = \"yes\"\n", "follow_symlinks"),
    ("[default]\nscan_interval_minutes = 0\n", "scan_interval_minutes"),
    ("[other]\napi_retry_attempts = 0\n", "api_retry_attempts"),
])
def test_invalid_values_raise_config_error(isolated_env, content, message):
    _write(isolated_env / DEFAULT_CONFIG_FILENAME, content)
    with pytest.raises(ConfigError, match=message):
        ConfigManager()

def test_invalid_toml_raises_config_error(isolated_env):
    _write(isolated_env / DEFAULT_CONFIG_FILENAME, "[default\nbroken = ")
    with pytest.raises(ConfigError, match="Failed to parse TOML"):
        ConfigManager()

def test_profile_must_be_a_table():
    with pytest.raises(ConfigError, match="must be a table"):
        ConfigManager.validate_dict({"default": {}, "oops": 5})

def test_env_supplies_api_key_and_language(isolated_env, monkeypatch):
    monkeypatch.setenv("TMDB_API_KEY", "secret")
    monkeypatch.setenv("TMDB_LANGUAGE", "de")
    _write(isolated_env / DEFAULT_CONFIG_FILENAME, "[default]\ntmdb_language = \"fr\"\n")
    manager = ConfigManager()
    assert manager.get_api_key('tmdb') == "secret"
    assert manager.get_value('tmdb_language') == "de"
    assert manager.get_value('tmdb_language', command_line_value="it") == "it"


# --- ConfigHelper ---
def test_helper_prefers_command_line(isolated_env):
    _write(isolated_env / DEFAULT_CONFIG_FILENAME, "[default]\napi_rate_limit_delay = 1.5\ndb_path = \"/data/catalog.db\"\n")
    args = argparse.Namespace(profile='default', api_rate_limit_delay=0.1, db_path=None, video_extensions="mkv, .avi")
    cfg = ConfigHelper(ConfigManager(), args)
    assert cfg('api_rate_limit_delay') == 0.1
    assert cfg.db_path() == "/data/catalog.db"
    assert cfg.get_list('video_extensions') == ["mkv", ".avi"]
    assert cfg.get_list('ignore_dirs') == []

def test_helper_default_db_path(isolated_env, mocker, tmp_path):
    mocker.patch("scan_app.config_manager.platformdirs.user_data_dir", return_value=str(tmp_path / "data"))
    cfg = ConfigHelper(ConfigManager(), argparse.Namespace(profile=None))
    assert cfg.profile == 'default'
    assert cfg.db_path() == str(tmp_path / "data" / "catalog.db")


# --- Generated file ---
def test_generated_default_config_round_trips():
    content = generate_default_toml_content()
    parsed = pytomlpp.loads(content)
    validated = ConfigManager.validate_dict(parsed)
    assert validated['default']['video_extensions'] == [".mp4", ".mkv", ".avi"]
    assert validated['default']['scan_interval_minutes'] == 60.0
    assert "# db_path = (not set)" in content
