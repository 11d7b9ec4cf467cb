"""Configuration loading utilities for the log tailer."""
from __future__ import annotations

import codecs
import logging
import re
import string
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml # type: ignore


logger = logging.getLogger(__name__)

DEFAULT_LINE_FORMAT = "{path}: {line}"
DEFAULT_CHUNK_SIZE = 64 * 1024

_DECODE_ERROR_POLICIES = ("strict", "replace", "ignore", "backslashreplace", "surrogateescape")


class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""


@dataclass
class TailConfig:
    """Options describing which files to tail and how to read them."""

    files: List[Path] = field(default_factory=list)
    encoding: str = "utf-8"
    errors: str = "replace"
    chunk_size: int = DEFAULT_CHUNK_SIZE
    bus_capacity: int = 0  # 0 means unbounded
    strict_startup: bool = True
    line_format: str = DEFAULT_LINE_FORMAT

    def with_files(self, extra: Iterable[Path]) -> "TailConfig":
        """Return a copy with ``extra`` appended, skipping duplicates."""

        merged = list(self.files)
        for path in extra:
            if path not in merged:
                merged.append(path)
        return replace(self, files=merged)


def load_config(path: Path) -> TailConfig:
    """Load and validate the YAML configuration file."""

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:  # pragma: no cover - logging helper
        raise ConfigError(f"Failed to parse YAML configuration: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    raw = data.get("tail", {})
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("'tail' section must be a mapping")

    return _parse_tail_config(raw, base_dir=path.parent)


def build_config(files: Iterable[str], **options: Any) -> TailConfig:
    """Validate programmatic options the same way the YAML loader does."""

    raw: Dict[str, Any] = dict(options)
    raw["files"] = [str(item) for item in files]
    return _parse_tail_config(raw, base_dir=None)


def _parse_tail_config(raw: Dict[str, Any], *, base_dir: Optional[Path]) -> TailConfig:
    files = [
        _resolve_path(item, base_dir=base_dir)
        for item in _ensure_str_list(raw.get("files", []), "tail.files")
    ]

    encoding = raw.get("encoding", "utf-8")
    if not isinstance(encoding, str):
        raise ConfigError("tail.encoding must be a string")
    try:
        codecs.lookup(encoding)
    except LookupError as exc:
        raise ConfigError(f"tail.encoding names an unknown codec: {encoding}") from exc
    # Lines are split on the raw newline byte before decoding.
    try:
        encoder = codecs.getincrementalencoder(encoding)()
        encoder.encode("a")
        newline = encoder.encode("\n")
    except (LookupError, TypeError, UnicodeError) as exc:
        raise ConfigError(f"tail.encoding is not a text encoding: {encoding}") from exc
    if newline != b"\n":
        raise ConfigError(f"tail.encoding must encode newline as a single byte: {encoding}")

    errors = raw.get("errors", "replace")
    if errors not in _DECODE_ERROR_POLICIES:
        allowed = ", ".join(_DECODE_ERROR_POLICIES)
        raise ConfigError(f"tail.errors must be one of: {allowed}")

    chunk_size = _parse_int(raw.get("chunk_size", DEFAULT_CHUNK_SIZE), field_name="tail.chunk_size", minimum=1)
    bus_capacity = _parse_int(raw.get("bus_capacity", 0), field_name="tail.bus_capacity", minimum=0)

    strict_flag = raw.get("strict_startup", True)
    if not isinstance(strict_flag, bool):
        raise ConfigError("tail.strict_startup must be a boolean")

    line_format = raw.get("line_format", DEFAULT_LINE_FORMAT)
    if not isinstance(line_format, str):
        raise ConfigError("tail.line_format must be a string")
    _check_line_format(line_format)

    config = TailConfig(
        files=files,
        encoding=encoding,
        errors=errors,
        chunk_size=chunk_size,
        bus_capacity=bus_capacity,
        strict_startup=strict_flag,
        line_format=line_format,
    )
    logger.debug(
        "Loaded tail config: %s files, encoding=%s, bus_capacity=%s, strict=%s",
        len(config.files),
        config.encoding,
        config.bus_capacity,
        config.strict_startup,
    )
    return config


def _check_line_format(line_format: str) -> None:
    message = "tail.line_format may only reference the {path} and {line} fields"
    try:
        fields = [name for _, name, _, _ in string.Formatter().parse(line_format) if name is not None]
    except ValueError as exc:
        raise ConfigError(message) from exc
    for name in fields:
        root = re.split(r"[.\[]", name, maxsplit=1)[0]
        # Lines may be empty, so only the path supports attribute access.
        if root != "path" and name != "line":
            raise ConfigError(message)
    try:
        line_format.format(path=Path("/var/log/app.log"), line="sample")
    except (AttributeError, IndexError, KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"tail.line_format cannot be rendered: {exc}") from exc


def _resolve_path(value: str, *, base_dir: Optional[Path]) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base_dir / path) if base_dir is not None else path
    return path.absolute()


def _parse_int(value: Any, *, field_name: str, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{field_name} must be an integer")
    if value < minimum:
        raise ConfigError(f"{field_name} must be at least {minimum}")
    return value


def _ensure_str_list(value: Any, field_name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigError(f"{field_name} must be a list of strings")
    items: List[str] = []
    for elem in value:
        if not isinstance(elem, str):
            raise ConfigError(f"{field_name} must contain only strings")
        items.append(elem)
    return items
