"""Settings file: API key and named defaults, plus value resolution."""
import logging, os, pathlib, sys
from typing import Any, Dict, Mapping, Optional

from . import APP_NAME
from .jsonfile import read_json, write_json

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "sonar"
ENV_API_KEY = "PERPLEXITY_API_KEY"
ENV_MODEL = "PERPLEXITY_MODEL"
ENV_CONFIG_DIR = "PERPLEXITY_CONFIG_DIR"

VALID_DEFAULTS = ("model", "stream", "searchMode", "contextSize", "language", "safeSearch")
BOOL_DEFAULTS = ("stream", "safeSearch")
ENUM_DEFAULTS = {
    "searchMode": ("web", "academic", "sec"),
    "contextSize": ("low", "medium", "high"),
}

LEGACY_CONFIG = pathlib.Path.home() / ".perplexity-cli" / "config.json"


def get_config_dir(environ: Optional[Mapping[str, str]] = None) -> pathlib.Path:
    env = os.environ if environ is None else environ
    if env.get(ENV_CONFIG_DIR):
        return pathlib.Path(env[ENV_CONFIG_DIR])
    if env.get("XDG_CONFIG_HOME"):
        return pathlib.Path(env["XDG_CONFIG_HOME"]) / APP_NAME
    if sys.platform == "win32":
        appdata = env.get("APPDATA") or str(pathlib.Path.home() / "AppData" / "Roaming")
        return pathlib.Path(appdata) / APP_NAME
    return pathlib.Path.home() / ".config" / APP_NAME


def parse_default(key: str, value: str) -> Any:
    """Convert a `config set` string into the stored value, validating enums."""
    if key not in VALID_DEFAULTS:
        raise ValueError(f"Unknown config key: {key}")
    if key in BOOL_DEFAULTS:
        return value == "true"
    allowed = ENUM_DEFAULTS.get(key)
    if allowed and value not in allowed:
        raise ValueError(f"Invalid value for {key}: {value} (expected one of: {', '.join(allowed)})")
    return value


def mask_key(key: str) -> str:
    if len(key) <= 8:
        return "****"
    return key[:4] + "*" * (len(key) - 8) + key[-4:]


class SettingsStore:
    """The settings JSON file. Saves replace the whole record; callers load, mutate, save."""

    def __init__(self, config_dir: pathlib.Path, legacy_path: Optional[pathlib.Path] = LEGACY_CONFIG):
        self.config_dir = config_dir
        self.path = config_dir / "config.json"
        self.legacy_path = legacy_path
        self._migrated = False

    def _migrate_legacy(self) -> None:
        self._migrated = True
        if self.legacy_path is None or not self.legacy_path.exists() or self.path.exists():
            return
        try:
            old = read_json(self.legacy_path, {})
            record: Dict[str, Any] = {}
            if isinstance(old, dict) and old.get("apiKey"):
                record["apiKey"] = old["apiKey"]
            write_json(self.path, record)
            logger.debug("Migrated legacy config from %s", self.legacy_path)
        except OSError as e:
            # user can re-enter the key with `pplx config set-key`
            logger.debug("Legacy config migration failed: %s", e)

    def load(self) -> Dict[str, Any]:
        if not self._migrated:
            self._migrate_legacy()
        data = read_json(self.path, {})
        return data if isinstance(data, dict) else {}

    def save(self, record: Dict[str, Any]) -> None:
        write_json(self.path, record)

    def defaults(self) -> Dict[str, Any]:
        d = self.load().get("defaults")
        return d if isinstance(d, dict) else {}

    def resolve_key(self, explicit: Optional[str] = None) -> Optional[str]:
        return explicit or os.environ.get(ENV_API_KEY) or self.load().get("apiKey") or None

    def resolve_model(self, explicit: Optional[str] = None) -> str:
        return explicit or os.environ.get(ENV_MODEL) or self.defaults().get("model") or DEFAULT_MODEL
