"""
Ingestion - from a stable file to a stored, versioned record.

Public API:
    IngestionService - read -> parse -> fingerprint -> resolve -> archive
    VersioningResolver - INSERTED / UPDATED / DUPLICATE policy
    FileArchiver - success/error archive with conflict-safe naming
"""

from .errors import IngestionError, IoTransientError, FileChangedError, ArchiveError
from .versioning import PersistenceOutcome, ResolveResult, VersioningResolver
from .archive import ArchiveOutcome, FileArchiver
from .service import IngestionResult, IngestionService, IngestionStatus

__all__ = [
    # Errors
    "IngestionError",
    "IoTransientError",
    "FileChangedError",
    "ArchiveError",
    # Versioning
    "PersistenceOutcome",
    "ResolveResult",
    "VersioningResolver",
    # Archive
    "ArchiveOutcome",
    "FileArchiver",
    # Pipeline
    "IngestionResult",
    "IngestionService",
    "IngestionStatus",
]
