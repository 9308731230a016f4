from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import BinaryIO

from slotfeed.connectors.base import ConnectorSettings
from slotfeed.errors import ConfigError, FetchFailure, ListFailure
from slotfeed.models import Slot


@dataclass(slots=True)
class LocalDirectoryConnector:
    """Slots are the files under ``root`` matching ``pattern``.

    The slot date comes from the file name when ``date_regex`` matches it
    (first group parsed with ``date_format``), otherwise from the file mtime.
    Identifiers are paths relative to ``root`` in POSIX form.
    """

    settings: ConnectorSettings

    @property
    def name(self) -> str:
        return self.settings.name

    @property
    def root(self) -> Path:
        raw = self.settings.params.get("root")
        if not raw:
            raise ConfigError(f"connector {self.name!r} requires a 'root' parameter")
        return Path(str(raw)).expanduser()

    def list_slots(self) -> list[Slot]:
        root = self.root
        if not root.is_dir():
            raise ListFailure(f"root directory not available: {root}")
        try:
            slots = [
                Slot(identifier=self._identifier(path), timestamp=self._timestamp(path))
                for path in self._iter_files(root)
            ]
        except OSError as exc:
            raise ListFailure(f"cannot list {root}: {exc}") from exc
        slots.sort(key=lambda slot: (slot.timestamp, slot.identifier))
        return slots

    def fetch(self, slot: Slot) -> BinaryIO:
        path = self.root / slot.identifier
        try:
            return path.open("rb")
        except OSError as exc:
            raise FetchFailure(f"cannot open {path}: {exc}") from exc

    def _iter_files(self, root: Path) -> list[Path]:
        pattern = str(self.settings.params.get("pattern", "*"))
        exclude_globs = self.settings.params.get("exclude_globs") or []
        paths: list[Path] = []
        for path in root.glob(pattern):
            if not path.is_file():
                continue
            rel = path.relative_to(root).as_posix()
            if any(fnmatch.fnmatch(rel, str(glob)) for glob in exclude_globs):
                continue
            paths.append(path)
        return sorted(paths)

    def _identifier(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def _timestamp(self, path: Path) -> datetime:
        date_regex = self.settings.params.get("date_regex")
        if date_regex:
            match = re.search(str(date_regex), path.name)
            if match:
                date_format = str(self.settings.params.get("date_format", "%Y%m%d"))
                raw = match.group(1) if match.groups() else match.group(0)
                try:
                    return datetime.strptime(raw, date_format).replace(tzinfo=UTC)
                except ValueError:
                    pass
        return datetime.fromtimestamp(path.stat().st_mtime, tz=UTC)
