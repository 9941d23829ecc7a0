# SprintDeck configuration
# Override endpoints and paths via sprintdeck.yaml or SPRINTDECK_* env vars.

import logging
import os
import sys
import yaml
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_PATH = Path.home() / ".config" / "sprintdeck" / "sprintdeck.yaml"

LOG_FORMAT = "%(asctime)s [sprintdeck] %(levelname)s: %(message)s"

# env var -> (field, converter)
ENV_OVERRIDES = {
    "SPRINTDECK_API_URL": ("api_base_url", str),
    "SPRINTDECK_USER_ID": ("user_id", str),
    "SPRINTDECK_API_KEY": ("api_key", str),
    "SPRINTDECK_DB": ("db_path", str),
    "SPRINTDECK_LOG_LEVEL": ("log_level", str),
}


@dataclass
class Config:
    """Runtime configuration for the client core and the API server."""

    # Client
    api_base_url: str = "http://127.0.0.1:3000"
    user_id: Optional[str] = None        # sent as X-User-Id
    api_key: Optional[str] = None        # sent as X-API-Key; server requires it when set
    request_timeout: float = 10.0

    # Server
    db_path: str = "~/.local/share/sprintdeck/sprintdeck.db"
    host: str = "127.0.0.1"
    port: int = 3000

    log_level: str = "INFO"

    def apply_env(self, environ=None):
        """Let SPRINTDECK_* environment variables win over file values."""
        environ = os.environ if environ is None else environ
        for var, (name, convert) in ENV_OVERRIDES.items():
            value = environ.get(var)
            if value:
                setattr(self, name, convert(value))

    def validate(self):
        try:
            self.port = int(self.port)
            self.request_timeout = float(self.request_timeout)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e
        if not 0 < self.port < 65536:
            raise ConfigError(f"Port out of range: {self.port}")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")
        if not isinstance(logging.getLevelName(str(self.log_level).upper()), int):
            raise ConfigError(f"Unknown log level: {self.log_level}")
        self.log_level = str(self.log_level).upper()

    def resolve_paths(self):
        """Expand ~ in filesystem paths."""
        self.db_path = str(Path(self.db_path).expanduser())
        self.api_base_url = self.api_base_url.rstrip("/")

    @classmethod
    def load(cls, path: Optional[str] = None, environ=None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {cfg_path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping")
            cfg = cls(**{k: v for k, v in data.items() if hasattr(cls, k)})
        else:
            if path:
                logger.warning(f"Config file {cfg_path} not found, using defaults")
            cfg = cls()
        cfg.apply_env(environ)
        cfg.validate()
        cfg.resolve_paths()
        return cfg


def setup_logging(level: str = "INFO"):
    """Configure root logging to stdout."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
