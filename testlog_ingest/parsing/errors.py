"""
Parsing error hierarchy.

A parse failure is terminal for the file that caused it. The file is routed
to the error archive and never retried automatically.
"""

from typing import Optional


class ParsingError(Exception):
    """Base exception for test log parsing failures."""

    pass


class FormatError(ParsingError):
    """
    A structurally required field is missing or cannot be converted.

    Attributes:
        field: Label of the offending field (e.g. "Device Serial Number")
        message: Human-readable explanation
    """

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        self.message = message or f"Missing required field: {field}"
        super().__init__(self.message)
