"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_MAX_PAGES = 1000
MAX_PAGES_ENV = "DOCPACKS_MAX_PAGES"
HOME_ENV = "DOCPACKS_HOME"
DEFAULT_USER_AGENT = "docpacks/0.1.0"


def _get_default_data_dir() -> Path:
    """Get the default docs directory, honouring ``DOCPACKS_HOME``."""
    override = os.environ.get(HOME_ENV)
    if override:
        return Path(override)
    return Path.home() / ".local" / "share" / "docpacks" / "docs"


def _get_default_max_pages() -> int:
    raw = os.environ.get(MAX_PAGES_ENV)
    if not raw:
        return DEFAULT_MAX_PAGES
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_MAX_PAGES
    return value if value > 0 else DEFAULT_MAX_PAGES


@dataclass(slots=True)
class AppConfig:
    data_dir: Path | None = None
    max_pages: int = field(default_factory=_get_default_max_pages)
    request_timeout: float = 30.0
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        if self.data_dir is None:
            self.data_dir = _get_default_data_dir()

    @property
    def packs_dir(self) -> Path:
        return self.resolve_data_dir() / "packs"

    def resolve_data_dir(self, base_dir: Path | None = None) -> Path:
        if self.data_dir is None:
            self.data_dir = _get_default_data_dir()
        if Path(self.data_dir).is_absolute() or base_dir is None:
            return Path(self.data_dir)
        return base_dir / self.data_dir
