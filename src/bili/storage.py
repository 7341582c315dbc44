"""Local file operations for configuration and the keyed auth store."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping

from bili.models import Config, Runtime

logger = logging.getLogger(__name__)

RUNTIME_ENV = "BILI_RUNTIME"
PROXY_BASE_ENV = "BILI_PASSPORT_PROXY_BASE"

DEFAULT_CONFIG = Config(
    runtime=Runtime.DESKTOP,
    proxy_base=None,
    poll_interval=2.0,
    timeout=10.0,
)


def _parse_runtime(value: Any) -> Runtime:
    try:
        return Runtime(str(value).strip().lower())
    except ValueError:
        logger.warning("Unknown runtime %r, using %s", value, DEFAULT_CONFIG.runtime.value)
        return DEFAULT_CONFIG.runtime


class Storage:
    """Manages local file storage for configuration and auth state."""

    def __init__(self, base_path: Path | None = None) -> None:
        self.base_path = base_path or Path.home() / ".bili"
        self.config_path = self.base_path / "config.json"
        self.auth_path = self.base_path / "auth.json"

    def _ensure_dirs(self) -> None:
        """Create the base directory if it doesn't exist."""
        self.base_path.mkdir(parents=True, exist_ok=True)

    def get_config(self, environ: Mapping[str, str] | None = None) -> Config:
        """Load config from config.json, then apply environment overrides."""
        environ = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        if self.config_path.exists():
            data = json.loads(self.config_path.read_text(encoding="utf-8"))

        runtime = data.get("runtime", DEFAULT_CONFIG.runtime.value)
        proxy_base = data.get("proxy_base", DEFAULT_CONFIG.proxy_base)

        # Environment wins over the file
        if environ.get(RUNTIME_ENV):
            runtime = environ[RUNTIME_ENV]
        if environ.get(PROXY_BASE_ENV):
            proxy_base = environ[PROXY_BASE_ENV]

        return Config(
            runtime=_parse_runtime(runtime),
            proxy_base=proxy_base or None,
            poll_interval=float(data.get("poll_interval", DEFAULT_CONFIG.poll_interval)),
            timeout=float(data.get("timeout", DEFAULT_CONFIG.timeout)),
        )

    def save_config(self, config: Config) -> None:
        """Save config to config.json."""
        self._ensure_dirs()
        data = {
            "runtime": config.runtime.value,
            "proxy_base": config.proxy_base,
            "poll_interval": config.poll_interval,
            "timeout": config.timeout,
        }
        self.config_path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def _load_auth(self) -> dict[str, Any]:
        if not self.auth_path.exists():
            return {}

        data = json.loads(self.auth_path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{self.auth_path} does not hold a JSON object")
        return data

    def _save_auth(self, data: dict[str, Any]) -> None:
        """Write auth.json and flush it to disk before returning."""
        self._ensure_dirs()
        fd, tmp_name = tempfile.mkstemp(dir=self.base_path, prefix=".auth-", suffix=".json")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.auth_path)
        finally:
            tmp_path.unlink(missing_ok=True)

    def read_key(self, key: str) -> Any:
        """Return the value stored under key in auth.json, or None."""
        return self._load_auth().get(key)

    def write_key(self, key: str, value: Any) -> None:
        """Store value under key in auth.json."""
        data = self._load_auth()
        data[key] = value
        self._save_auth(data)

    def delete_key(self, key: str) -> None:
        """Remove key from auth.json if present."""
        data = self._load_auth()
        if key not in data:
            return
        del data[key]
        self._save_auth(data)
