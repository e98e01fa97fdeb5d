"""Process-scoped state handed to every command handler."""
import pathlib
from typing import Mapping, Optional

from .client import ClientCache
from .config import LEGACY_CONFIG, SettingsStore, get_config_dir
from .history import HistoryStore, ThreadStore, now_ms
from .output import Console


class AppContext:
    def __init__(self, config_dir: pathlib.Path,
                 api_key_override: Optional[str] = None,
                 verbose: bool = False,
                 color: bool = True,
                 legacy_config: Optional[pathlib.Path] = LEGACY_CONFIG,
                 clients: Optional[ClientCache] = None,
                 clock=now_ms):
        self.config_dir = config_dir
        self.api_key_override = api_key_override
        self.verbose = verbose
        self.settings = SettingsStore(config_dir, legacy_config)
        self.history = HistoryStore(config_dir, clock)
        self.threads = ThreadStore(config_dir, clock)
        self.clients = clients or ClientCache()
        self.console = Console(color)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **kw) -> "AppContext":
        return cls(get_config_dir(environ), **kw)

    def api_key(self) -> Optional[str]:
        return self.settings.resolve_key(self.api_key_override)

    def client(self, api_key: str):
        return self.clients.get(api_key)

    def reset(self) -> None:
        self.clients.reset()
