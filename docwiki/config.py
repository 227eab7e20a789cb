"""
docwiki - Configuration
=======================================
Loads from ~/.config/docwiki/docwiki.yaml with env var overrides.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

# Load .env from project root (before any os.environ access)
_env_path = Path(__file__).parent.parent / ".env"
load_dotenv(_env_path)

# Paths
PACKAGE_ROOT = Path(__file__).parent
PROJECT_ROOT = PACKAGE_ROOT.parent
DATA_DIR = PROJECT_ROOT / "data"
CONFIG_PATH = Path.home() / ".config" / "docwiki" / "docwiki.yaml"

# Database
DB_PATH = DATA_DIR / "docwiki.db"


@dataclass
class ServerConfig:
    """Web server configuration."""

    host: str = "127.0.0.1"
    port: int = 8090
    reload: bool = False
    workers: int = 1


@dataclass
class DatabaseConfig:
    """SQLite storage."""

    path: str = str(DB_PATH)


@dataclass
class PagesConfig:
    """Page tree defaults."""

    sidebar_per_page: int = 250
    recent_per_page: int = 20
    max_per_page: int = 100
    jitter_digits: int = 3  # random suffix on generated positions


@dataclass
class IdentityConfig:
    """Fallback identity when requests carry no X-User-ID / X-Workspace-ID."""

    default_user: str = "anonymous"
    default_workspace: str = "default"


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    json_format: bool = True


@dataclass
class DocwikiConfig:
    """Root configuration object."""

    server: ServerConfig = field(default_factory=ServerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    pages: PagesConfig = field(default_factory=PagesConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def db_path(self) -> Path:
        return Path(self.database.path)


_SECTIONS = ("server", "database", "pages", "identity", "logging")


def _apply_section(obj, raw: dict):
    """Apply dict values to a dataclass."""
    for k, v in raw.items():
        if hasattr(obj, k):
            setattr(obj, k, v)


def load_config(path: Optional[Path] = None) -> DocwikiConfig:
    """Load docwiki config from YAML + env vars."""
    cfg = DocwikiConfig()
    path = path or CONFIG_PATH

    if path.exists():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        for section in _SECTIONS:
            if isinstance(raw.get(section), dict):
                _apply_section(getattr(cfg, section), raw[section])

    # Env overrides
    if p := os.environ.get("DOCWIKI_PORT"):
        cfg.server.port = int(p)
    if h := os.environ.get("DOCWIKI_HOST"):
        cfg.server.host = h
    if db := os.environ.get("DOCWIKI_DB_PATH"):
        cfg.database.path = db
    if u := os.environ.get("DOCWIKI_DEFAULT_USER"):
        cfg.identity.default_user = u
    if w := os.environ.get("DOCWIKI_DEFAULT_WORKSPACE"):
        cfg.identity.default_workspace = w
    if lvl := os.environ.get("LOG_LEVEL"):
        cfg.logging.level = lvl
    if os.environ.get("LOG_FORMAT") == "text":
        cfg.logging.json_format = False

    return cfg


_config: Optional[DocwikiConfig] = None


def get_config() -> DocwikiConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config

