"""
Filesystem scanner for the watch folder.

Finds files matching the configured glob pattern. Used for the startup scan;
the same matching rules filter live filesystem events.
"""

import fnmatch
import logging
from pathlib import Path
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


class FileScanner:
    """
    Watch folder scanner.

    Matches file names against a glob pattern (case-insensitive). Skips
    hidden files, directories, symlinks and anything inside an excluded
    root (the archive folders may live under the watch folder).
    """

    def __init__(
        self,
        root,
        pattern: str = "*.log",
        recursive: bool = False,
        excluded_roots: Optional[Iterable] = None,
        skip_hidden: bool = True,
    ):
        """
        Initialize file scanner.

        Args:
            root: Watch folder
            pattern: File name glob, e.g. "*.log"
            recursive: Include subdirectories (default: False)
            excluded_roots: Directories whose contents are never matched
            skip_hidden: Skip files/dirs starting with '.' (default: True)
        """
        self.root = Path(root).resolve()
        self.pattern = pattern
        self.recursive = recursive
        self.excluded_roots = [Path(p).resolve() for p in (excluded_roots or [])]
        self.skip_hidden = skip_hidden

    def matches(self, path) -> bool:
        """
        Whether a path is a candidate for ingestion.

        Only the name and location are checked; the file need not exist.
        """
        candidate = Path(path).resolve()

        if self.skip_hidden and candidate.name.startswith("."):
            return False

        if not fnmatch.fnmatch(candidate.name.lower(), self.pattern.lower()):
            return False

        for excluded in self.excluded_roots:
            if candidate == excluded or excluded in candidate.parents:
                return False

        try:
            relative = candidate.relative_to(self.root)
        except ValueError:
            return False

        if not self.recursive and len(relative.parts) != 1:
            return False

        if self.skip_hidden and any(part.startswith(".") for part in relative.parts[:-1]):
            return False

        return True

    def scan(self) -> List[Path]:
        """
        Scan the watch folder.

        Returns:
            List of absolute paths to candidate files (not yet stability-checked)

        Files are returned in deterministic order (sorted by path).
        """
        if not self.root.is_dir():
            logger.warning(f"Watch folder is not a directory: {self.root}")
            return []

        items = self.root.rglob("*") if self.recursive else self.root.iterdir()
        candidates = []

        try:
            for item in items:
                if item.is_symlink():
                    continue
                if not item.is_file():
                    continue
                if self.matches(item):
                    candidates.append(item.resolve())
        except OSError as e:
            # Directory became inaccessible during scan; keep what we have
            logger.warning(f"Scan of {self.root} interrupted: {e}")

        return sorted(candidates)
