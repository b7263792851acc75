"""Configuration loading for pytfs.

Settings come from an INI file (``~/.tfsrc`` by default)::

    [tfs]
    url = https://tfs.example.com/tfs/DefaultCollection
    project = MyProject
    branch = $/MyProject/Main
    username = DOMAIN\\jdoe
    password = secret
    auth = ntlm
    insecure = false
    timeout = 120

    [log]
    file = ~/tfs.log
    level = INFO

``TFS_URL``, ``TFS_PROJECT``, ``TFS_BRANCH``, ``TFS_USERNAME`` and
``TFS_PASSWORD`` override the file. ``TFS_CONFIG`` points at another file.
"""

import configparser
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .exceptions import TfsConfigError

CONFIG_FILE_NAME = ".tfsrc"
AUTH_SCHEMES = ("ntlm", "basic")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Settings that may be overridden from the environment as TFS_<NAME>
_ENV_SETTINGS = ("url", "project", "branch", "username", "password")


@dataclass
class Config:
    """Resolved settings for one run."""

    url: str = ""
    """Collection URL, e.g. https://tfs.example.com/tfs/DefaultCollection"""

    project: str = ""
    """Default team project for listings"""

    branch: str = ""
    """Server path that scopes changeset history, e.g. $/Project/Main"""

    username: str = ""
    password: str = ""

    auth: str = "ntlm"
    """Authentication scheme: ntlm or basic"""

    insecure: bool = False
    """Skip TLS certificate verification (self-signed servers only)"""

    timeout: Optional[float] = None
    """Network timeout in seconds, None to wait indefinitely"""

    log_file: Optional[str] = None
    log_level: str = "WARNING"

    path: Optional[Path] = None
    """File the settings were read from, if any"""

    def is_configured(self) -> bool:
        """Check if a server URL is configured."""
        return bool(self.url)


def get_config_path() -> Path:
    """Get the default configuration file path."""
    env_path = os.environ.get("TFS_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / CONFIG_FILE_NAME


def _read_tfs_section(section: configparser.SectionProxy, config: Config) -> None:
    config.url = section.get("url", "")
    config.project = section.get("project", "")
    config.branch = section.get("branch", "")
    config.username = section.get("username", "")
    config.password = section.get("password", "")
    config.auth = section.get("auth", "ntlm").strip().lower()

    try:
        config.insecure = section.getboolean("insecure", fallback=False)
    except ValueError as e:
        raise TfsConfigError(f"Invalid value for 'insecure': {e}") from e

    timeout = section.get("timeout", "").strip()
    if timeout:
        try:
            config.timeout = float(timeout)
        except ValueError as e:
            raise TfsConfigError(f"Invalid timeout '{timeout}'") from e


def _read_log_section(section: configparser.SectionProxy, config: Config) -> None:
    log_file = section.get("file", "").strip()
    config.log_file = log_file or None
    config.log_level = section.get("level", config.log_level).strip().upper()


def load_config(path: Optional[str | Path] = None) -> Config:
    """Load settings from a configuration file and the environment.

    Args:
        path: Explicit configuration file. When omitted the default file is
            used if it exists.

    Returns:
        The resolved Config

    Raises:
        TfsConfigError: If an explicit file is missing, the file cannot be
            parsed, a value is invalid, or no server URL is configured
    """
    config_path = Path(path).expanduser() if path else get_config_path()
    config = Config()

    if config_path.is_file():
        parser = configparser.ConfigParser(interpolation=None)
        try:
            with open(config_path, encoding="utf-8") as fh:
                parser.read_file(fh)
        except (configparser.Error, OSError, UnicodeDecodeError) as e:
            raise TfsConfigError(
                f"Cannot parse configuration file {config_path}: {e}"
            ) from e

        config.path = config_path
        if parser.has_section("tfs"):
            _read_tfs_section(parser["tfs"], config)
        if parser.has_section("log"):
            _read_log_section(parser["log"], config)
    elif path is not None:
        raise TfsConfigError(f"Configuration file not found: {config_path}")

    for name in _ENV_SETTINGS:
        value = os.environ.get(f"TFS_{name.upper()}")
        if value:
            setattr(config, name, value)

    config.url = config.url.strip().rstrip("/")

    if config.auth not in AUTH_SCHEMES:
        raise TfsConfigError(
            f"Unknown auth scheme '{config.auth}' (expected one of: "
            f"{', '.join(AUTH_SCHEMES)})"
        )
    if config.log_level not in LOG_LEVELS:
        raise TfsConfigError(f"Unknown log level '{config.log_level}'")
    if not config.is_configured():
        raise TfsConfigError(
            "This program requires a configuration file. Create "
            f"{config_path} with a [tfs] section containing 'url', "
            "or set TFS_URL."
        )

    return config
