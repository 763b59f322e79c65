# scan_app/config_manager.py

import argparse
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import platformdirs
import pytomlpp
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigError

log = logging.getLogger(__name__)
DEFAULT_CONFIG_FILENAME = "config.toml"
APP_NAME = "scan_app"


def default_db_path() -> str:
    return str(Path(platformdirs.user_data_dir(APP_NAME, APP_NAME)) / "catalog.db")


class BaseProfileSettings(BaseModel):
    # Scanning
    video_extensions: Optional[List[str]] = Field(default_factory=lambda: [".mp4", ".mkv", ".avi"], description="Video file extensions picked up by the scanner (case-insensitive).")
    ignore_dirs: Optional[List[str]] = Field(default_factory=list, description="Exact directory names to skip while walking media folders.")
    ignore_patterns: Optional[List[str]] = Field(
        default_factory=lambda: ['.*', '*.partial', '*[sS]ample*'],
        description="Glob patterns (files and directories) to skip while walking media folders."
    )
    follow_symlinks: Optional[bool] = Field(default=False, description="Descend into symlinked directories (each real directory is visited once).")

    # Catalog
    db_path: Optional[str] = Field(default=None, description="SQLite catalog path (default: user data dir).")

    # API & Metadata Options
    tmdb_language: Optional[str] = Field(default='en', description="Language for TMDB lookups (TMDB_LANGUAGE env var wins).")
    api_rate_limit_delay: Optional[float] = Field(default=0.25, ge=0.0, description="Delay (seconds) between API calls.")
    api_retry_attempts: Optional[int] = Field(default=3, ge=1, description="Attempts per API call for transient errors.")
    api_retry_wait_seconds: Optional[float] = Field(default=2.0, ge=0.0, description="Wait time (seconds) between API retry attempts.")

    # Caching Options
    cache_enabled: Optional[bool] = Field(default=True, description="Enable API response caching.")
    cache_directory: Optional[str] = Field(default=None, description="Custom cache directory (default: user cache dir).")
    cache_expire_seconds: Optional[int] = Field(default=604800, ge=0, description="Cache expiration time in seconds (default: 7 days).")

    # Scheduler
    scan_interval_minutes: Optional[float] = Field(default=60.0, gt=0.0, description="Minutes between scheduled full scans.")
    run_scan_on_start: Optional[bool] = Field(default=True, description="Run a scan immediately when the scheduler starts.")

    # Logging Options
    log_file: Optional[str] = Field(default=None, description="Path to log file (e.g., scan_app.log).")
    log_level: Optional[str] = Field(default='INFO', description="Logging level: DEBUG, INFO, WARNING, ERROR.")

    @field_validator('log_level', mode='before')
    @classmethod
    def check_log_level(cls, v: Any) -> Optional[str]:
        if v is not None and isinstance(v, str) and v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR']:
            raise ValueError("log_level must be one of DEBUG, INFO, WARNING, ERROR")
        return v.upper() if isinstance(v, str) else None

    @field_validator('video_extensions', mode='before')
    @classmethod
    def check_video_extensions(cls, v: Any) -> Optional[List[str]]:
        if v is None: return v
        if isinstance(v, str):
            v = [item for item in v.split(',')]
        if not isinstance(v, list):
            raise ValueError("video_extensions must be a list or comma-separated string")
        normalized = []
        for item in v:
            ext = str(item).strip().lower()
            if not ext: continue
            normalized.append(ext if ext.startswith('.') else f".{ext}")
        if not normalized:
            raise ValueError("video_extensions cannot be empty")
        return normalized

    @field_validator('follow_symlinks', 'cache_enabled', 'run_scan_on_start', mode='before')
    @classmethod
    def check_strict_bool(cls, v: Any, info) -> Optional[bool]:
        if v is not None and not isinstance(v, bool):
            raise ValueError(f"{info.field_name} must be a boolean (true/false)")
        return v


class DefaultSettings(BaseProfileSettings):
    pass

class RootConfigModel(BaseModel):
    default: DefaultSettings = Field(default_factory=DefaultSettings)
    model_config = {'extra': 'allow'}


def _toml_value(value: Any) -> str:
    if isinstance(value, str):
        escaped = value.replace('\\', '\\\\').replace('"', '\\"')
        return f'"{escaped}"'
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return str(value)

def generate_default_toml_content() -> str:
    default_settings = DefaultSettings()
    content_lines = ["# Media library scanner configuration",
                     "# Secrets (TMDB_API_KEY) belong in the environment or a .env file.\n"]

    sections: Dict[str, List[str]] = {
        "Scanning": ['video_extensions', 'ignore_dirs', 'ignore_patterns', 'follow_symlinks'],
        "Catalog": ['db_path'],
        "API & Metadata Options": ['tmdb_language', 'api_rate_limit_delay', 'api_retry_attempts', 'api_retry_wait_seconds'],
        "Caching Options": ['cache_enabled', 'cache_directory', 'cache_expire_seconds'],
        "Scheduler": ['scan_interval_minutes', 'run_scan_on_start'],
        "Logging Options": ['log_file', 'log_level'],
    }

    content_lines.append("[default]")
    for section_name, keys in sections.items():
        content_lines.append(f"\n  # --- {section_name} ---")
        for key in keys:
            field_info = BaseProfileSettings.model_fields[key]
            if field_info.description:
                content_lines.append(f"  # {field_info.description}")
            default_value = getattr(default_settings, key)
            if default_value is None:
                content_lines.append(f"  # {key} = (not set)")
                continue
            content_lines.append(f"  {key} = {_toml_value(default_value)}")

    content_lines.append("\n# Other profiles override [default], e.g.:")
    content_lines.append("# [nightly]")
    content_lines.append("# scan_interval_minutes = 1440")
    return "\n".join(content_lines) + "\n"


class ConfigManager:
    def __init__(self, config_path_override: Optional[Path] = None):
        self.config_path = self._resolve_config_path(config_path_override)
        self._raw_toml_content_str: Optional[str] = None
        self._config = self._load_config()
        self._env = self._load_env()
        log.debug(f"Config path used: {self.config_path}")

    def _resolve_config_path(self, config_path_override: Optional[Path]) -> Path:
        if config_path_override:
            p = Path(config_path_override).expanduser()
            log.debug(f"Using explicit config path target: {p.resolve()}")
            return p.resolve()

        cwd_path = Path.cwd() / DEFAULT_CONFIG_FILENAME
        if cwd_path.is_file():
            log.debug(f"Found config file in current directory: {cwd_path}")
            return cwd_path.resolve()

        user_config_path = Path(platformdirs.user_config_dir(APP_NAME, APP_NAME)) / DEFAULT_CONFIG_FILENAME
        if user_config_path.is_file():
            log.debug(f"Found config file in user config directory: {user_config_path}")
            return user_config_path.resolve()

        log.debug(f"No config file found. Defaulting to CWD: {cwd_path.resolve()}")
        return cwd_path.resolve()

    def _load_config(self) -> Dict[str, Any]:
        if not self.config_path.is_file():
            log.info(f"Config file not found at '{self.config_path}'. Using internal defaults.")
            self._raw_toml_content_str = "# Config file not found.\n"
            return RootConfigModel().model_dump(exclude_unset=False, by_alias=False)

        try:
            self._raw_toml_content_str = self.config_path.read_text(encoding='utf-8')
        except OSError as e_os:
            raise ConfigError(f"Failed to read config file '{self.config_path}': {e_os}") from e_os
        if not self._raw_toml_content_str.strip():
            log.warning(f"Config file '{self.config_path}' is empty. Using internal defaults.")
            return RootConfigModel().model_dump(exclude_unset=False, by_alias=False)
        try:
            cfg_dict = pytomlpp.loads(self._raw_toml_content_str)
        except pytomlpp.DecodeError as e_toml:
            raise ConfigError(f"Failed to parse TOML config '{self.config_path}': {e_toml}") from e_toml
        log.info(f"Loaded configuration from '{self.config_path}'")
        return self.validate_dict(cfg_dict, source=str(self.config_path))

    @staticmethod
    def validate_dict(cfg_dict: Dict[str, Any], source: str = "<config>") -> Dict[str, Any]:
        """Validates [default] and every profile table. Raises ConfigError listing each bad field."""
        try:
            validated = RootConfigModel.model_validate(cfg_dict).model_dump(exclude_unset=False, by_alias=False)
            for name, section in cfg_dict.items():
                if name == 'default': continue
                if not isinstance(section, dict):
                    raise ConfigError(f"Profile '{name}' in '{source}' must be a table.")
                validated[name] = BaseProfileSettings.model_validate(section).model_dump(exclude_unset=True)
            log.debug("Config validation successful.")
            return validated
        except ValidationError as e_val:
            error_msgs = [f"  - Field `{' -> '.join(map(str, err['loc']))}`: {err['msg']}" for err in e_val.errors()]
            error_summary = f"Config file '{source}' validation failed:\n" + "\n".join(error_msgs)
            log.error(error_summary)
            raise ConfigError(error_summary) from e_val

    def get_raw_toml_content(self) -> Optional[str]:
        return self._raw_toml_content_str

    def _load_env(self) -> Dict[str, Optional[str]]:
        env_path: Union[str, Path, None] = find_dotenv(usecwd=True)
        if env_path:
            log.debug(f"Loading environment variables from: {env_path}")
            load_dotenv(dotenv_path=env_path)
        values = {
            'tmdb_api_key': os.getenv("TMDB_API_KEY"),
            'tmdb_language': os.getenv("TMDB_LANGUAGE"),
        }
        if values['tmdb_api_key']:
            log.info(f"Loaded TMDB API key from {'.env file' if env_path else 'environment variables'}.")
        else:
            log.debug("TMDB_API_KEY not set in environment or .env file.")
        return values

    def get_value(self, key: str, profile: str = 'default', command_line_value: Any = None, default_value: Any = None) -> Any:
        if command_line_value is not None:
            return command_line_value

        if key == 'tmdb_language' and self._env.get('tmdb_language'):
            return self._env['tmdb_language']

        profile_settings = self._config.get(profile, {})
        if isinstance(profile_settings, dict) and profile_settings.get(key) is not None:
            return profile_settings[key]

        default_section = self._config.get('default', {})
        if isinstance(default_section, dict) and default_section.get(key) is not None:
            return default_section[key]

        if default_value is None and key in BaseProfileSettings.model_fields:
            field_info = BaseProfileSettings.model_fields[key]
            if field_info.default_factory is not None:
                return field_info.default_factory()
            return field_info.default
        return default_value

    def get_api_key(self, service_name: str) -> Optional[str]:
        return self._env.get(f"{service_name.lower()}_api_key")


class ConfigHelper:
    """Resolves settings as: CLI argument, then profile, then [default], then model default."""

    def __init__(self, config_manager: ConfigManager, args_ns: argparse.Namespace):
        self.manager = config_manager
        self.args = args_ns
        self.profile = getattr(args_ns, 'profile', 'default') or 'default'

    def __call__(self, key: str, default_value: Any = None, arg_value: Any = None) -> Any:
        cmd_line_val = arg_value if arg_value is not None else getattr(self.args, key, None)
        return self.manager.get_value(key, self.profile, cmd_line_val, default_value)

    def get_api_key(self, service_name: str) -> Optional[str]:
        return self.manager.get_api_key(service_name)

    def get_list(self, key: str, default_value: Optional[List[Any]] = None) -> List[Any]:
        cmd_line_val_str = getattr(self.args, key, None)
        cmd_line_list: Optional[List[str]] = None
        if isinstance(cmd_line_val_str, str):
            cmd_line_list = [item.strip() for item in cmd_line_val_str.split(',') if item.strip()]

        val = self.manager.get_value(key, self.profile, cmd_line_list, default_value)
        if isinstance(val, list):
            return val
        if isinstance(val, str):
            return [item.strip() for item in val.split(',') if item.strip()]
        return list(default_value) if isinstance(default_value, list) else []

    def db_path(self) -> str:
        return str(self('db_path', None) or default_db_path())
