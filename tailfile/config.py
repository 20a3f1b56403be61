"""Configuration helpers for tailfile."""
from __future__ import annotations

import codecs
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .notifier import NOTIFIER_KINDS

_DEFAULT_POLL_INTERVAL = 0.25
_DEFAULT_NOTIFIER = "auto"
_DEFAULT_ENCODING = "utf-8"
_DEFAULT_LINE_QUEUE_SIZE = 1024

CONFIG_ENV = "TAILFILE_CONFIG"

logger = logging.getLogger(__name__)


@dataclass
class TailConfig:
    """Settings for one tailing session."""

    target_path: str
    # Empty disables bookmark persistence.
    bookmark_path: str = ""
    poll_interval: float = _DEFAULT_POLL_INTERVAL
    notifier: str = _DEFAULT_NOTIFIER
    encoding: str = _DEFAULT_ENCODING
    line_queue_size: int = _DEFAULT_LINE_QUEUE_SIZE

    def __post_init__(self) -> None:
        if not self.target_path:
            raise ValueError("target_path is required")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.notifier not in NOTIFIER_KINDS:
            raise ValueError(f"notifier must be one of {', '.join(NOTIFIER_KINDS)}, got {self.notifier!r}")
        if self.line_queue_size < 0:
            raise ValueError("line_queue_size must not be negative")
        try:
            codecs.lookup(self.encoding)
        except LookupError:
            raise ValueError(f"unknown encoding {self.encoding!r}") from None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_path": self.target_path,
            "bookmark_path": self.bookmark_path,
            "poll_interval": self.poll_interval,
            "notifier": self.notifier,
            "encoding": self.encoding,
            "line_queue_size": self.line_queue_size,
        }


def _expand(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path)) if path else path


def determine_config_file(explicit: Optional[Path] = None) -> Optional[Path]:
    """Return the config file to read, if one was named."""

    if explicit is not None:
        return Path(_expand(str(explicit)))
    env = os.environ.get(CONFIG_ENV)
    if env:
        return Path(_expand(env))
    return None


def load_config(
    config_file: Optional[Path] = None,
    *,
    target_path: Optional[str] = None,
    **overrides: Any,
) -> TailConfig:
    """Build a :class:`TailConfig` from a JSON file plus explicit overrides.

    Keyword overrides that are ``None`` are ignored so command line options
    left unset fall through to the file.
    """

    data: Dict[str, Any] = {}
    path = determine_config_file(config_file)
    if path is not None and path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("ignoring undecodable config file %s", path)
            data = {}
        if not isinstance(data, dict):
            logger.warning("ignoring config file %s: expected a JSON object", path)
            data = {}
    if target_path is not None:
        data["target_path"] = target_path
    data.update({key: value for key, value in overrides.items() if value is not None})
    target = _expand(str(data.get("target_path", "")))
    return TailConfig(
        target_path=target,
        bookmark_path=_expand(str(data.get("bookmark_path", ""))),
        poll_interval=float(data.get("poll_interval", _DEFAULT_POLL_INTERVAL)),
        notifier=str(data.get("notifier", _DEFAULT_NOTIFIER)),
        encoding=str(data.get("encoding", _DEFAULT_ENCODING)),
        line_queue_size=int(data.get("line_queue_size", _DEFAULT_LINE_QUEUE_SIZE)),
    )


def save_config(config: TailConfig, path: Path) -> None:
    path.write_text(json.dumps(config.to_dict(), indent=2))


__all__ = ["CONFIG_ENV", "TailConfig", "determine_config_file", "load_config", "save_config"]
