"""
testlog-ingest - unattended ingestion of factory final-test logs.

Files dropped into a watch folder are held until their size stops changing,
parsed into a TestLogRecord, keyed by device serial + test timestamp, and
stored with content-hash deduplication and versioning. Processed files are
archived to success/error folders.
"""

__version__ = "0.1.0"
