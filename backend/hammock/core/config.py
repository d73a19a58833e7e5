import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from hammock.core.errors import ConfigError

APP_NAME = "hammock"


def _default_config_dir() -> Path:
    base = os.getenv("XDG_CONFIG_HOME")
    root = Path(base) if base else Path.home() / ".config"
    return root / APP_NAME


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_timeout(value: str) -> float:
    if not value.strip():
        return 0.0
    try:
        seconds = float(value)
    except ValueError:
        raise ConfigError(f"HAMMOCK_TIMEOUT must be a number of seconds, got {value!r}")
    if seconds < 0:
        raise ConfigError(f"HAMMOCK_TIMEOUT cannot be negative, got {value!r}")
    return seconds


class Settings(BaseModel):
    config_dir: Path
    state_path: Path
    log_level: str = "error"
    timeout_seconds: Optional[float] = 30.0
    verify_ssl: bool = True

    @property
    def log_dir(self) -> Path:
        return self.config_dir / "logs"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Read settings from HAMMOCK_* environment variables. run.py sets these
        from its flags before the app is created.
        """
        config_dir = os.getenv("HAMMOCK_CONFIG_DIR")
        state_path = os.getenv("HAMMOCK_STATE_PATH")
        timeout = os.getenv("HAMMOCK_TIMEOUT")
        timeout_seconds = 30.0
        if timeout is not None:
            # 0 or empty disables the transport timeout
            timeout_seconds = _parse_timeout(timeout)
        return cls(
            config_dir=Path(config_dir).expanduser() if config_dir else _default_config_dir(),
            state_path=Path(state_path).expanduser() if state_path else Path.home() / f".{APP_NAME}",
            log_level=os.getenv("HAMMOCK_LOG_LEVEL", "error"),
            timeout_seconds=timeout_seconds or None,
            verify_ssl=_env_bool("HAMMOCK_VERIFY_SSL", True),
        )
