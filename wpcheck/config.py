"""wpcheck configuration — project-level .wpcheckrc.yml support.

Loads configuration from .wpcheckrc.yml (or .wpcheckrc.yaml, .wpcheckrc.json)
found in the working directory or any parent. Command-line flags override
whatever the file sets.

Example .wpcheckrc.yml:
    timeout_ms: 5000       # per-check solver timeout
    workers: 4             # 0 = auto, 1 = sequential
    random_seed: 0
    assert_mode: cut       # or "inline" (default)
    format: json
    export_dir: build/graphs
    include_unannotated: false
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

import yaml

from wpcheck.errors import ConfigError, SourceLocation

logger = logging.getLogger(__name__)

ASSERT_MODES = ("cut", "inline")
FORMATS = ("text", "json")


@dataclass
class VerifierConfig:
    """Settings for one verification run."""
    # Per-check solver timeout; a timeout yields UNKNOWN
    timeout_ms: int = 10000
    # Worker threads for solver checks: 0 = auto (cpu_count, at most 8)
    workers: int = 0
    random_seed: int = 0
    # "inline": assert actions that keep the path context (c && Q);
    # "cut": assert annotations are cut points and forget everything else
    assert_mode: str = "inline"
    format: str = "text"
    export_dir: str = "graphs"
    include_unannotated: bool = False

    def __post_init__(self):
        if self.assert_mode not in ASSERT_MODES:
            raise ConfigError(f"assert_mode must be one of {', '.join(ASSERT_MODES)}, "
                              f"not '{self.assert_mode}'")
        if self.format not in FORMATS:
            raise ConfigError(f"format must be one of {', '.join(FORMATS)}, not '{self.format}'")
        if self.timeout_ms <= 0:
            raise ConfigError(f"timeout_ms must be positive, not {self.timeout_ms}")
        if self.workers < 0:
            raise ConfigError(f"workers must be >= 0, not {self.workers}")

    def worker_count(self) -> int:
        if self.workers > 0:
            return self.workers
        return min(os.cpu_count() or 1, 8)

    def merged(self, **overrides: Any) -> "VerifierConfig":
        """Copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


# ---------------------------------------------------------------------------
# Config file names (in priority order)
# ---------------------------------------------------------------------------

_CONFIG_FILES = [
    ".wpcheckrc.yml",
    ".wpcheckrc.yaml",
    ".wpcheckrc.json",
]


def find_config(start_dir: str = ".") -> Optional[str]:
    """Find the nearest config file by walking up from start_dir."""
    current = os.path.abspath(start_dir)
    while True:
        for name in _CONFIG_FILES:
            path = os.path.join(current, name)
            if os.path.isfile(path):
                return path
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    return None


def load_config(path: Optional[str] = None, start_dir: str = ".") -> VerifierConfig:
    """Load configuration from a file.

    If no path is given, searches for a config file starting from start_dir.
    If no config file is found (or it cannot be read), returns defaults.
    A file that exists but does not parse raises ``ConfigError``.
    """
    if path is None:
        path = find_config(start_dir)

    if path is None:
        return VerifierConfig()

    try:
        with open(path, "r") as f:
            content = f.read()
    except (IOError, OSError) as e:
        logger.warning("Cannot read config file %s: %s", path, e)
        return VerifierConfig()

    logger.info("Using config file %s", path)
    if path.endswith(".json"):
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e.msg}",
                              location=SourceLocation(e.lineno, e.colno, path)) from e
    else:
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}",
                              location=SourceLocation(1, 0, path)) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must hold a mapping",
                          location=SourceLocation(1, 0, path))
    return _dict_to_config(data, path)


def _dict_to_config(data: Dict[str, Any], path: str = "<config>") -> VerifierConfig:
    """Convert a parsed dict to VerifierConfig. Unknown keys are ignored."""
    known = {f.name: f for f in fields(VerifierConfig)}
    values: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            logger.debug("Ignoring unknown config key '%s'", key)
            continue
        expected = type(known[key].default)
        # No truthiness coercion: "false" must not read as True, nor true as 1
        if (expected is bool) != isinstance(value, bool):
            raise ConfigError(f"Bad value for '{key}' in {path}: {value!r}",
                              location=SourceLocation(1, 0, path))
        try:
            values[key] = expected(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Bad value for '{key}' in {path}: {value!r}",
                              location=SourceLocation(1, 0, path)) from e
    return VerifierConfig(**values)
