"""
Final-test log parser.

Converts the raw text of one log file into a TestLogRecord. The format is
human-authored and loosely structured, so the parser is tolerant: unknown
lines are skipped and optional fields are left empty. Only the identity
fields (device serial, date, time) and a handful of numeric values are hard
requirements; failing those raises FormatError naming the field.

Layout, in order:
1. Header: "Label: value" lines up to "Time for test:"
2. Test summary: "Time for test: <n> seconds  Pass/Fail: PASS"
3. Current result: "Current result:" followed by one tab-delimited line
4. Zero or more "Signal Strength Data" blocks

Measurement values use a decimal comma ("0,174719"). Integers (power,
frequencies, matrix cells) are plain digits.
"""

import re
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Tuple

from .errors import FormatError
from .identity import build_record_key
from .models import (
    Comparison,
    CurrentMeasurement,
    HeaderFields,
    IdentityFields,
    SignalBlock,
    SourceMetadata,
    TestLogRecord,
    TestResult,
    TestSummary,
)


# Section markers (matched case-insensitively)
SUMMARY_LABEL = "Time for test:"
CURRENT_LABEL = "Current result:"
SIGNAL_BLOCK_MARKER = "Signal Strength Data"

OUTPUT_POWER_LABEL = "Output power:"
COMPARISON_LABEL = "Comparison:"
FREQUENCY_LABEL = "Frequency Array:"
MATRIX_LABEL = "Signal Strength Matrix"
AVERAGE_LABEL = "Average Signal Strength"
ATTENUATION_LABEL = "Attenuation Array"

# Lines that end the header section
SECTION_LABELS = (SUMMARY_LABEL, CURRENT_LABEL, SIGNAL_BLOCK_MARKER)

# Labels that open a part of a signal block
BLOCK_LABELS = (
    OUTPUT_POWER_LABEL,
    COMPARISON_LABEL,
    FREQUENCY_LABEL,
    MATRIX_LABEL,
    AVERAGE_LABEL,
    ATTENUATION_LABEL,
    SIGNAL_BLOCK_MARKER,
)

# Lines that end a matrix even without a blank line in between
MATRIX_TERMINATORS = BLOCK_LABELS + ("Average", "Attenuation")

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M:%S"

_LINE_BREAK = re.compile(r"\r\n|\r|\n")
_WHITESPACE = re.compile(r"\s+")
_INTEGER = re.compile(r"[+-]?\d+")


# =============================================================================
# Value conversion helpers
# =============================================================================


def parse_decimal(text: str, decimal_separator: str = ",") -> Optional[Decimal]:
    """
    Parse a locale-formatted decimal ("0,174719" -> Decimal("0.174719")).

    Space and non-breaking-space digit grouping is removed. Returns None when
    the text is not a finite number, including a dot-written value under a
    non-dot separator ("0.5" with ",").
    """
    cleaned = text.strip().replace(" ", "").replace("\u00a0", "")
    if not cleaned:
        return None
    if decimal_separator != ".":
        if "." in cleaned:
            return None
        cleaned = cleaned.replace(decimal_separator, ".")
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def parse_int(text: str) -> Optional[int]:
    """Parse a plain integer token, or None."""
    token = text.strip()
    if not _INTEGER.fullmatch(token):
        return None
    return int(token)


def parse_int_array(line: str) -> List[int]:
    """Split a whitespace-separated line into integers, skipping non-integers."""
    values = []
    for token in _WHITESPACE.split(line.strip()):
        value = parse_int(token)
        if value is not None:
            values.append(value)
    return values


def split_fields(line: str) -> List[str]:
    """Split a tab-delimited line, dropping empty fields."""
    return [part.strip() for part in line.split("\t") if part.strip()]


def extract_labeled_value(line: str, label: str) -> Optional[str]:
    """
    Return the value of a "Label: value" line.

    The label is matched case-insensitively as a prefix of the trimmed line;
    the value is everything after the first colon, trimmed. Returns None if
    the label does not match or the value is empty.
    """
    stripped = line.strip()
    if not stripped.lower().startswith(label.lower()):
        return None
    colon = stripped.find(":")
    if colon < 0:
        return None
    value = stripped[colon + 1:].strip()
    return value or None


def _starts_with(line: str, label: str) -> bool:
    return line.lower().startswith(label.lower())


# =============================================================================
# Parser
# =============================================================================


class _Cursor:
    """Forward-only position over the log lines."""

    def __init__(self, lines: List[str]):
        self.lines = lines
        self.index = 0

    def done(self) -> bool:
        return self.index >= len(self.lines)

    def current(self) -> str:
        return self.lines[self.index]

    def advance(self) -> None:
        self.index += 1

    def take_next(self, stop_labels: Tuple[str, ...] = ()) -> Optional[str]:
        """
        Advance past the current line and consume the next non-blank one.

        Returns None, leaving the cursor on it, if that line starts with one
        of stop_labels.
        """
        self.index += 1
        while not self.done() and not self.lines[self.index].strip():
            self.index += 1
        if self.done():
            return None
        line = self.lines[self.index]
        if any(_starts_with(line.strip(), label) for label in stop_labels):
            return None
        self.index += 1
        return line


class TestLogParser:
    """
    Stateless parser for final-test log files.

    One instance may be shared between threads; all per-file state lives in
    local variables of parse().
    """

    __test__ = False

    def __init__(self, decimal_separator: str = ","):
        self.decimal_separator = decimal_separator

        # Header label -> (field name, converter). Identity labels are handled
        # separately because they are validated strictly.
        self._header_fields: List[Tuple[str, str, Callable[[str], object]]] = [
            ("Test Operator:", "test_operator", str),
            ("MCU Serial Number:", "mcu_serial_number", str),
            ("RF Unit Serial Number:", "rf_unit_serial_number", str),
            ("Reader Type:", "reader_type", str),
            ("Tagmod Version:", "tagmod_version", str),
            ("RFsweep build date:", "rf_sweep_build_date", str),
            ("Config and Limit File Version:", "config_limit_file_version", str),
            ("Read Level:", "read_level", parse_int),
        ]

    def parse(self, raw_text: str, file_name: str) -> TestLogRecord:
        """
        Parse one log file.

        Args:
            raw_text: Complete file content
            file_name: Original file name, kept as source metadata

        Returns:
            TestLogRecord with id built and content_sha256 unset

        Raises:
            FormatError: If a required field is missing or malformed
        """
        if raw_text is None or not raw_text.strip():
            raise FormatError("raw_text", "Log file is empty")

        cursor = _Cursor(_LINE_BREAK.split(raw_text))

        identity_values, header = self._parse_header(cursor)
        summary = self._parse_summary(cursor)
        current = self._parse_current(cursor)
        blocks = self._parse_signal_blocks(cursor)

        identity = self._build_identity(identity_values)

        record = TestLogRecord(
            source=SourceMetadata(original_file_name=file_name),
            identity=identity,
            header=header,
            summary=summary,
            current=current,
            signal_blocks=blocks,
            raw_text=raw_text,
            timestamp_local=datetime.combine(identity.date, identity.time),
        )
        return record.model_copy(update={"id": build_record_key(identity)})

    # -------------------------------------------------------------------------
    # Header
    # -------------------------------------------------------------------------

    def _parse_header(self, cursor: _Cursor) -> Tuple[Dict[str, object], HeaderFields]:
        identity: Dict[str, object] = {}
        header: Dict[str, object] = {}

        while not cursor.done():
            line = cursor.current().strip()

            if not line:
                cursor.advance()
                continue

            if any(_starts_with(line, label) for label in SECTION_LABELS):
                break

            serial = extract_labeled_value(line, "Device Serial Number:")
            date_text = extract_labeled_value(line, "Date:")
            time_text = extract_labeled_value(line, "Time:")

            if serial is not None:
                identity["device_serial"] = serial
            elif date_text is not None:
                identity["date"] = _parse_date(date_text)
            elif time_text is not None:
                identity["time"] = _parse_time(time_text)
            else:
                for label, field_name, convert in self._header_fields:
                    value = extract_labeled_value(line, label)
                    if value is None:
                        continue
                    converted = convert(value)
                    if converted is not None:
                        header[field_name] = converted
                    break

            cursor.advance()

        return identity, HeaderFields(**header)

    def _build_identity(self, values: Dict[str, object]) -> IdentityFields:
        for key, label in (
            ("device_serial", "Device Serial Number"),
            ("date", "Date"),
            ("time", "Time"),
        ):
            if values.get(key) is None:
                raise FormatError(label, f"{label} is required to build the record key")
        return IdentityFields(**values)

    # -------------------------------------------------------------------------
    # Summary and current
    # -------------------------------------------------------------------------

    def _parse_summary(self, cursor: _Cursor) -> Optional[TestSummary]:
        while not cursor.done():
            line = cursor.current().strip()
            if _starts_with(line, CURRENT_LABEL) or _starts_with(line, SIGNAL_BLOCK_MARKER):
                return None
            if not _starts_with(line, SUMMARY_LABEL):
                cursor.advance()
                continue

            # "Time for test: \t147 seconds \tPass/Fail: \tPASS"
            duration = None
            result = None
            for token in _WHITESPACE.split(line[len(SUMMARY_LABEL):].strip()):
                value = parse_int(token)
                if value is not None and duration is None:
                    duration = value
                elif result is None:
                    result = TestResult.from_token(token)

            if duration is None or duration < 0:
                raise FormatError("Time for test", f"Invalid test duration: {line!r}")

            cursor.advance()
            return TestSummary(duration_seconds=duration, overall_result=result)

        return None

    def _parse_current(self, cursor: _Cursor) -> Optional[CurrentMeasurement]:
        start = cursor.index
        while not cursor.done():
            line = cursor.current().strip()
            if _starts_with(line, CURRENT_LABEL):
                data_line = cursor.take_next((SIGNAL_BLOCK_MARKER,))
                if data_line is None:
                    raise FormatError("Measured current", "Current result line is missing")
                return self.parse_current_line(data_line)
            if line.lower() == SIGNAL_BLOCK_MARKER.lower():
                break
            cursor.advance()

        # No current section; let the signal block scan start where we did
        cursor.index = start
        return None

    def parse_current_line(self, line: str) -> CurrentMeasurement:
        """
        Parse "Measured current:\\t0,17\\tLimitLow:\\t0,13\\tLimitHigh:\\t0,22\\tUnit:\\tA\\tPass/Fail:\\tPASS".

        A label present with an unconvertible value raises FormatError.
        """
        parts = split_fields(line)
        values: Dict[str, object] = {}

        decimal_labels = {
            "measured current:": ("value", "Measured current"),
            "limitlow:": ("lower_limit", "LimitLow"),
            "limithigh:": ("upper_limit", "LimitHigh"),
        }

        for i in range(len(parts) - 1):
            label = parts[i].lower()
            value_text = parts[i + 1]

            matched = next((k for k in decimal_labels if k in label), None)
            if matched:
                field_name, display = decimal_labels[matched]
                value = parse_decimal(value_text, self.decimal_separator)
                if value is None:
                    raise FormatError(display, f"Invalid {display} value: {value_text!r}")
                values[field_name] = value
            elif "unit:" in label and "rf unit" not in label:
                values["unit"] = value_text
            elif "pass/fail:" in label:
                values["result"] = TestResult.from_token(value_text)

        if "value" not in values:
            raise FormatError("Measured current")

        return CurrentMeasurement(**values)

    # -------------------------------------------------------------------------
    # Signal blocks
    # -------------------------------------------------------------------------

    def _parse_signal_blocks(self, cursor: _Cursor) -> List[SignalBlock]:
        blocks = []
        while not cursor.done():
            line = cursor.current().strip()
            cursor.advance()
            if line.lower() == SIGNAL_BLOCK_MARKER.lower():
                blocks.append(self._parse_signal_block(cursor))
        return blocks

    def _parse_signal_block(self, cursor: _Cursor) -> SignalBlock:
        block: Dict[str, object] = {}

        while not cursor.done():
            line = cursor.current().strip()

            if line.lower() == SIGNAL_BLOCK_MARKER.lower():
                break

            if not line:
                cursor.advance()
            elif _starts_with(line, OUTPUT_POWER_LABEL):
                for token in split_fields(line[len(OUTPUT_POWER_LABEL):]):
                    power = parse_int(token)
                    if power is not None:
                        block["output_power"] = power
                    else:
                        result = TestResult.from_token(token)
                        if result is not None:
                            block["result"] = result
                cursor.advance()
            elif _starts_with(line, COMPARISON_LABEL):
                data_line = cursor.take_next(BLOCK_LABELS)
                if data_line is not None:
                    block["comparison"] = self.parse_comparison_line(data_line)
            elif _starts_with(line, FREQUENCY_LABEL):
                data_line = cursor.take_next(BLOCK_LABELS)
                if data_line is not None:
                    block["frequencies"] = parse_int_array(data_line)
            elif _starts_with(line, MATRIX_LABEL):
                cursor.advance()
                block["matrix"] = _parse_matrix(cursor)
            elif _starts_with(line, AVERAGE_LABEL):
                data_line = cursor.take_next(BLOCK_LABELS)
                if data_line is not None:
                    block["averages"] = parse_int_array(data_line)
            elif _starts_with(line, ATTENUATION_LABEL):
                data_line = cursor.take_next(BLOCK_LABELS)
                if data_line is not None:
                    block["attenuations"] = parse_int_array(data_line)
            else:
                cursor.advance()

        return SignalBlock(**block)

    def parse_comparison_line(self, line: str) -> Comparison:
        """
        Parse a comparison data line.

        The fields are lower limit, upper limit, measurement, unit, result.
        If the first field is not numeric it is the comparison type (e.g.
        "GELE") and the remaining fields shift by one. Limits that do not
        parse are left as None.
        """
        parts = split_fields(line)
        if not parts:
            return Comparison()

        values: Dict[str, object] = {}
        offset = 0
        if parse_decimal(parts[0].replace(",", "."), ".") is None:
            values["type"] = parts[0]
            offset = 1

        fields = parts[offset:]
        if len(fields) > 0:
            values["lower_limit"] = parse_decimal(fields[0], self.decimal_separator)
        if len(fields) > 1:
            values["upper_limit"] = parse_decimal(fields[1], self.decimal_separator)
        if len(fields) > 2:
            measurement = parse_decimal(fields[2], self.decimal_separator)
            if measurement is None:
                raise FormatError(
                    "Comparison measurement", f"Invalid measurement: {fields[2]!r}"
                )
            values["measurement"] = measurement
        if len(fields) > 3:
            values["unit"] = fields[3]
        if len(fields) > 4:
            values["result"] = TestResult.from_token(fields[4])

        return Comparison(**values)


def _parse_matrix(cursor: _Cursor) -> List[List[int]]:
    """Collect matrix rows until a blank line or the next known label."""
    matrix = []
    while not cursor.done():
        line = cursor.current().strip()
        if not line or any(_starts_with(line, label) for label in MATRIX_TERMINATORS):
            break
        row = parse_int_array(line)
        if row:
            matrix.append(row)
        cursor.advance()
    return matrix


def _parse_date(text: str) -> date:
    try:
        return datetime.strptime(text, DATE_FORMAT).date()
    except ValueError:
        raise FormatError("Date", f"Failed to parse date: {text!r}") from None


def _parse_time(text: str) -> time:
    try:
        return datetime.strptime(text, TIME_FORMAT).time()
    except ValueError:
        raise FormatError("Time", f"Failed to parse time: {text!r}") from None


def parse_test_log(
    raw_text: str, file_name: str, decimal_separator: str = ","
) -> TestLogRecord:
    """Parse a final-test log. See TestLogParser.parse()."""
    return TestLogParser(decimal_separator=decimal_separator).parse(raw_text, file_name)
