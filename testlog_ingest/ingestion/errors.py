"""
Ingestion pipeline errors.

None of these are fatal to the service. They decide the outcome of one file:
- IoTransientError: file could not be read after all retries
- FileChangedError: file grew or shrank after it was declared stable; the
  path is re-queued instead of parsing a torn read
- ArchiveError: move/copy to the archive failed; logged only
"""


class IngestionError(Exception):
    """Base exception for ingestion pipeline failures."""

    pass


class IoTransientError(IngestionError):
    """File is locked or temporarily unreadable."""

    def __init__(self, path: str, attempts: int, cause: Exception):
        self.path = path
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Failed to read {path} after {attempts} attempt(s): {cause}")


class FileChangedError(IngestionError):
    """File size changed between the stability check and the read."""

    def __init__(self, path: str, expected_size: int, actual_size: int):
        self.path = path
        self.expected_size = expected_size
        self.actual_size = actual_size
        super().__init__(
            f"File changed after stability check: {path} "
            f"(expected {expected_size} bytes, read {actual_size})"
        )


class ArchiveError(IngestionError):
    """Archiving a processed file failed."""

    pass
