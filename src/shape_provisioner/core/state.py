"""Config record persistence.

The config record is the durable output of a reconciliation: a flat
``KEY="value"`` file that shell scripts can ``source`` and that the next run
loads to seed output references.
"""

from __future__ import annotations

import contextlib
import io
import logging
import os
import re
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import dotenv_values

from shape_provisioner.engine.errors import ConfigRecordError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

logger = logging.getLogger(__name__)

ConfigRecord = dict[str, str]

_KEY = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
# Characters the shell would expand inside double quotes.
_SHELL_SPECIAL = ("$", "`", "\\")


def is_record_key(key: str) -> bool:
    """Whether *key* can be a config record key (a shell variable name)."""
    return bool(_KEY.match(key))


def merge(existing: Mapping[str, str], updates: Mapping[str, str]) -> ConfigRecord:
    """Overlay *updates* on *existing*; keys absent from *updates* are kept."""
    merged = dict(existing)
    merged.update(updates)
    return merged


def _quote(key: str, value: str) -> str:
    if "\n" in value or "\r" in value:
        raise ConfigRecordError(f"Value for {key} must not contain newlines")
    if any(c in value for c in _SHELL_SPECIAL):
        if "'" in value:
            raise ConfigRecordError(
                f"Value for {key} mixes single quotes with shell metacharacters"
            )
        return f"'{value}'"
    return '"' + value.replace('"', '\\"') + '"'


def render_record(record: Mapping[str, str], *, header: str | None = None) -> str:
    """Render *record* as ``KEY="value"`` lines, sorted by key."""
    lines: list[str] = []
    if header:
        lines.extend(f"# {line}" if line else "#" for line in header.splitlines())
    for key in sorted(record):
        if not is_record_key(key):
            raise ConfigRecordError(f"Invalid config record key: {key!r}")
        lines.append(f"{key}={_quote(key, record[key])}")
    return "\n".join(lines) + "\n"


def parse_record(text: str) -> ConfigRecord:
    """Parse ``KEY="value"`` text. ``${...}`` is not interpolated."""
    values = dotenv_values(stream=io.StringIO(text), interpolate=False)
    return {k: v if v is not None else "" for k, v in values.items()}


class ConfigStore:
    """Reads and writes the config record file.

    Single writer: callers serialise runs with ``RecordLock``.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> ConfigRecord:
        """Load the record; an absent file is a first run, not an error."""
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No config record at %s, starting empty", self._path)
            return {}
        record = parse_record(text)
        logger.debug("Config record loaded from %s (%d keys)", self._path, len(record))
        return record

    def save(self, record: Mapping[str, str]) -> None:
        """Save the record.

        - Writes atomically (temp file + rename); the previous file stays
          intact if anything fails before the rename
        - Writes a `.backup` copy of the previous record when overwriting
        """
        path = self._path
        path.parent.mkdir(parents=True, exist_ok=True)

        stamp = datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
        content = render_record(record, header=f"Generated by shape-provisioner ({stamp})")

        backup_path = Path(str(path) + ".backup")
        # Avoid TOCTOU race between exists() and read_bytes().
        with contextlib.suppress(FileNotFoundError):
            backup_path.write_bytes(path.read_bytes())

        fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        tmp_file = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            tmp_file.replace(path)
        finally:
            with contextlib.suppress(FileNotFoundError):
                tmp_file.unlink()
        logger.debug("Config record saved: %d keys path=%s", len(record), path)

    def update(self, updates: Mapping[str, str]) -> ConfigRecord:
        """Merge *updates* into the stored record and save it."""
        record = merge(self.load(), updates)
        self.save(record)
        return record

    def remove(self, keys: Iterable[str]) -> list[str]:
        """Drop *keys* from the stored record. Returns the keys actually removed."""
        record = self.load()
        removed = sorted(k for k in set(keys) if k in record)
        if removed:
            for k in removed:
                del record[k]
            self.save(record)
        return removed
