"""
Archiving of processed files.

After ingestion a file is moved (or copied) to the success or error archive.
Existing files are never overwritten: a conflicting name gets a timestamp
suffix before the extension ("unit-20240315_140509.log"), and a counter if
that name is also taken.

Archiving is housekeeping. A failure here is reported as ArchiveError and
never changes the ingestion outcome.
"""

import logging
import os
import shutil
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from ..config.settings import ArchiveOperation, ArchiveSettings
from .errors import ArchiveError

logger = logging.getLogger(__name__)


class ArchiveOutcome(str, Enum):
    """Which archive a file goes to."""

    SUCCESS = "success"
    ERROR = "error"


class FileArchiver:
    """
    Moves or copies processed files into the archive roots.

    Configuration (ArchiveSettings):
        success_path / error_path: archive roots (None disables that archive)
        on_success / on_error: move or copy
        preserve_subfolders: keep the path relative to the watch root
        conflict_pattern / timestamp_format: naming on conflict
    """

    def __init__(
        self,
        settings: ArchiveSettings,
        watch_root: Path,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings
        self.watch_root = Path(watch_root).resolve()
        self._clock = clock

    def destination_root(self, outcome: ArchiveOutcome) -> Optional[Path]:
        root = (
            self.settings.success_path
            if outcome == ArchiveOutcome.SUCCESS
            else self.settings.error_path
        )
        return Path(root) if root else None

    def operation(self, outcome: ArchiveOutcome) -> ArchiveOperation:
        if outcome == ArchiveOutcome.SUCCESS:
            return self.settings.on_success
        return self.settings.on_error

    def archive_roots(self):
        """All configured archive roots."""
        return [
            root
            for root in (
                self.destination_root(ArchiveOutcome.SUCCESS),
                self.destination_root(ArchiveOutcome.ERROR),
            )
            if root is not None
        ]

    def target_path(self, source: Path, outcome: ArchiveOutcome) -> Optional[Path]:
        """
        Compute the (not yet conflict-checked) archive path for a file.

        Returns None if no archive root is configured for the outcome.
        """
        root = self.destination_root(outcome)
        if root is None:
            return None

        if self.settings.preserve_subfolders:
            try:
                relative = source.resolve().relative_to(self.watch_root)
            except ValueError:
                # Not under the watch root (e.g. ingested by explicit path)
                relative = Path(source.name)
            return root / relative

        return root / source.name

    def resolve_conflict(self, target: Path) -> Path:
        """
        Return target, or a timestamped variant if target already exists.

        Pattern tokens: {name} (stem), {timestamp}, {ext} (suffix with dot).
        """
        if not target.exists():
            return target

        timestamp = self._clock().strftime(self.settings.timestamp_format)
        new_name = self.settings.conflict_pattern.format(
            name=target.stem, timestamp=timestamp, ext=target.suffix
        )
        candidate = target.with_name(new_name)

        counter = 1
        while candidate.exists():
            stem = Path(new_name).stem
            candidate = target.with_name(f"{stem}-{counter}{target.suffix}")
            counter += 1

        return candidate

    def _claim(self, target: Path) -> Path:
        """
        Reserve the first free archive name by creating it exclusively.

        A name taken between resolve_conflict() and the create is skipped.
        The empty placeholder is replaced by the move or copy.
        """
        while True:
            candidate = self.resolve_conflict(target)
            try:
                fd = os.open(str(candidate), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                continue
            os.close(fd)
            return candidate

    def archive(self, source_path, outcome: ArchiveOutcome) -> Optional[Path]:
        """
        Archive one file.

        Args:
            source_path: File to archive
            outcome: SUCCESS or ERROR archive

        Returns:
            Final archive path, or None if archiving is not configured or the
            source no longer exists

        Raises:
            ArchiveError: If the move/copy fails
        """
        source = Path(source_path)

        if not source.exists():
            logger.warning(f"Cannot archive file - file does not exist: {source}")
            return None

        target = self.target_path(source, outcome)
        if target is None:
            logger.debug(f"Archive path not configured for {outcome.value}, leaving {source} in place")
            return None

        operation = self.operation(outcome)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target = self._claim(target)
        except OSError as e:
            raise ArchiveError(f"Failed to prepare archive target for {source} in {target.parent}: {e}") from e

        try:
            if operation == ArchiveOperation.MOVE:
                shutil.move(str(source), str(target))
            else:
                shutil.copy2(str(source), str(target))
        except OSError as e:
            target.unlink(missing_ok=True)
            raise ArchiveError(f"Failed to {operation.value} {source} to {target}: {e}") from e

        logger.info(
            f"Archived ({operation.value}) {outcome.value} file: {source} -> {target}"
        )
        return target
