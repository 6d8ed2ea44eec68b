"""
Normalizer for daily time record (DTR) imports.

Accepts CSV, JSON and Excel payloads and turns every row into a ``DtrRecord``
anchored to a local calendar date.

Recognized fields (case-insensitive, any of the aliases):
  date
  timein / time in
  timeout / time out
  accomplishment / notes

Row failures are collected as ``"Row N: <reason>"`` strings and never stop the
import; only a malformed top-level structure (missing required columns, a JSON
root that is not an array, an unreadable file) raises ``ImportStructureError``.

Date heuristic: a date without a ``T`` separator is split on ``-`` or ``/``;
when the first number is greater than 31 it is read as YEAR-MONTH-DAY,
otherwise as MONTH/DAY/YEAR.  ``05/06/2024`` is therefore always May 6, never
June 5.
"""

from __future__ import annotations

import io
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Literal

import pandas as pd
from pydantic import ValidationError

from tms.core.clock import local_tz
from tms.schemas.dtr import DtrRecord

logger = logging.getLogger(__name__)

ImportFormat = Literal["csv", "json", "xlsx"]

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "date": ("date",),
    "timein": ("timein", "time in"),
    "timeout": ("timeout", "time out"),
    "accomplishment": ("accomplishment", "notes"),
}

REQUIRED_COLUMNS: tuple[str, ...] = ("date", "timein")

_EXTENSION_FORMATS: dict[str, ImportFormat] = {
    ".csv": "csv",
    ".json": "json",
    ".xlsx": "xlsx",
}

_TIME_12H = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(AM|PM)$", re.IGNORECASE | re.ASCII)
_TIME_24H = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$", re.ASCII)
_DATE_PARTS = re.compile(r"[-/]")
# pandas renders date-only Excel cells as "YYYY-MM-DD 00:00:00"
_EXCEL_MIDNIGHT = re.compile(r"^(\d{4}-\d{2}-\d{2}) 00:00:00$")

_MISSING_COLUMNS_HINT = (
    "Please ensure your file has columns: date, timeIn, "
    "timeOut (optional), accomplishment (optional)"
)


class ImportStructureError(ValueError):
    """The payload as a whole cannot be read; no row was processed."""


@dataclass
class RawRow:
    """A source row collapsed to the four known fields, all as text."""

    date: str = ""
    time_in: str = ""
    time_out: str = ""
    accomplishment: str = ""

    @property
    def is_blank(self) -> bool:
        return not self.date and not self.time_in


@dataclass
class NormalizedBatch:
    records: list[tuple[int, DtrRecord]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.records) + len(self.errors)


_RAW_ROW_FIELDS: dict[str, str] = {
    "date": "date",
    "timein": "time_in",
    "timeout": "time_out",
    "accomplishment": "accomplishment",
}


def detect_format(filename: str | None) -> ImportFormat | None:
    if not filename:
        return None
    idx = filename.rfind(".")
    if idx == -1:
        return None
    return _EXTENSION_FORMATS.get(filename[idx:].lower())


def _canonical_field(name: str, aliases: dict[str, tuple[str, ...]]) -> str | None:
    key = name.strip().lower()
    for canonical, names in aliases.items():
        if key in names:
            return canonical
    return None


def _raw_row(values: dict[str, str]) -> RawRow:
    return RawRow(**{_RAW_ROW_FIELDS[k]: v for k, v in values.items() if k in _RAW_ROW_FIELDS})


def _require_columns(columns: list[str | None]) -> None:
    missing = [c for c in REQUIRED_COLUMNS if c not in columns]
    if missing:
        raise ImportStructureError(
            f"Missing required columns: {', '.join(missing)}. {_MISSING_COLUMNS_HINT}"
        )


def _decode(content: bytes | str) -> str:
    if isinstance(content, str):
        return content
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ImportStructureError("File is not valid UTF-8 text.")


# ---------------------------------------------------------------------------
# Readers: every format ends up as a list of RawRow
# ---------------------------------------------------------------------------


def split_csv_line(line: str) -> list[str]:
    """
    Split one CSV line on commas outside double quotes.

    Each quote character toggles the quoted state; quotes are dropped and
    every value is trimmed.
    """
    values: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            values.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    values.append("".join(current).strip())
    return values


def read_csv_rows(
    content: bytes | str,
    aliases: dict[str, tuple[str, ...]] = FIELD_ALIASES,
) -> list[RawRow]:
    lines = [line for line in _decode(content).splitlines() if line.strip()]
    if not lines:
        raise ImportStructureError("CSV file is empty")

    columns = [_canonical_field(h, aliases) for h in split_csv_line(lines[0])]
    _require_columns(columns)

    rows: list[RawRow] = []
    dropped = 0
    for line in lines[1:]:
        values = split_csv_line(line)
        mapped: dict[str, str] = {}
        for idx, column in enumerate(columns):
            if column is None or column in mapped:
                continue
            mapped[column] = values[idx] if idx < len(values) else ""
        row = _raw_row(mapped)
        if row.is_blank:
            dropped += 1
            continue
        rows.append(row)

    if dropped:
        logger.debug("CSV: dropped %d rows without date and timeIn", dropped)
    return rows


def _json_cell(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def read_json_rows(
    content: bytes | str,
    aliases: dict[str, tuple[str, ...]] = FIELD_ALIASES,
) -> list[RawRow]:
    try:
        data = json.loads(_decode(content))
    except json.JSONDecodeError:
        raise ImportStructureError("Invalid JSON format.")

    if not isinstance(data, list):
        raise ImportStructureError("JSON file must contain an array of DTR entries.")

    rows: list[RawRow] = []
    for item in data:
        mapped: dict[str, str] = {}
        if isinstance(item, dict):
            for key, value in item.items():
                column = _canonical_field(str(key), aliases)
                # first non-empty alias wins
                if column is None or mapped.get(column):
                    continue
                mapped[column] = _json_cell(value)
        rows.append(_raw_row(mapped))
    return rows


def _clean_cell(value: object) -> str:
    """Normalize pandas NaN placeholders to empty string."""
    text = str(value).strip() if value is not None else ""
    return "" if text.lower() in ("nan", "none", "nat") else text


def _find_header_row(file: io.BytesIO, aliases: dict[str, tuple[str, ...]]) -> int:
    """
    Scan the first 20 rows for the one holding both required columns.
    Returns the 0-based row index to pass as ``header=`` to ``pd.read_excel``.
    """
    try:
        preview = pd.read_excel(file, engine="openpyxl", dtype=str, nrows=20, header=None)
    except Exception as exc:
        raise ImportStructureError(f"Could not open workbook: {exc}")
    finally:
        file.seek(0)

    for row_idx, row in preview.iterrows():
        found = {_canonical_field(c, aliases) for c in row if isinstance(c, str)}
        if all(c in found for c in REQUIRED_COLUMNS):
            return int(row_idx)
    return 0


def read_xlsx_rows(
    content: bytes,
    aliases: dict[str, tuple[str, ...]] = FIELD_ALIASES,
) -> list[RawRow]:
    file = io.BytesIO(content)
    header_row = _find_header_row(file, aliases)

    try:
        df = pd.read_excel(file, engine="openpyxl", dtype=str, header=header_row)
    except Exception as exc:
        raise ImportStructureError(f"Could not open workbook: {exc}")

    columns = [_canonical_field(str(c), aliases) for c in df.columns]
    _require_columns(columns)

    rows: list[RawRow] = []
    for values in df.itertuples(index=False, name=None):
        mapped: dict[str, str] = {}
        for column, value in zip(columns, values):
            if column is None or column in mapped:
                continue
            mapped[column] = _clean_cell(value)
        if "date" in mapped:
            midnight = _EXCEL_MIDNIGHT.match(mapped["date"])
            if midnight:
                mapped["date"] = midnight.group(1)
        row = _raw_row(mapped)
        if not row.is_blank:
            rows.append(row)
    return rows


# ---------------------------------------------------------------------------
# Field parsing
# ---------------------------------------------------------------------------


def parse_date_string(value: str, tz: tzinfo | None = None) -> date | None:
    """
    Resolve a date cell to a local calendar date, or None when invalid.

    Full timestamps (containing ``T``) are parsed as instants and read in the
    local timezone; everything else is built directly from its three numbers.
    """
    tz = tz or local_tz()
    value = value.strip()

    if "T" in value:
        try:
            stamp = pd.to_datetime(value)
        except (ValueError, TypeError, OverflowError):
            return None
        if pd.isna(stamp):
            return None
        moment = stamp.to_pydatetime()
        if moment.tzinfo is None:
            return moment.date()
        return moment.astimezone(tz).date()

    parts = [p.strip() for p in _DATE_PARTS.split(value)]
    # isdigit() alone also accepts characters such as "²" that int() rejects
    if len(parts) != 3 or not all(p.isascii() and p.isdigit() for p in parts):
        return None
    try:
        first, second, third = (int(p) for p in parts)
        if first > 31:
            return date(first, second, third)
        return date(third, first, second)
    except ValueError:
        return None


def parse_time_string(value: str, on_date: date, tz: tzinfo | None = None) -> datetime | None:
    """
    Parse ``H:MM[:SS] AM|PM`` or 24-hour ``H:MM[:SS]`` on ``on_date``.

    The result is an aware datetime in ``tz`` (the local timezone by default).
    """
    tz = tz or local_tz()
    value = value.strip()

    match = _TIME_12H.match(value)
    if match:
        hours = int(match.group(1))
        if not 1 <= hours <= 12:
            return None
        meridiem = match.group(4).upper()
        if meridiem == "PM" and hours != 12:
            hours += 12
        elif meridiem == "AM" and hours == 12:
            hours = 0
    else:
        match = _TIME_24H.match(value)
        if not match:
            return None
        hours = int(match.group(1))

    minutes = int(match.group(2))
    seconds = int(match.group(3)) if match.group(3) else 0
    try:
        return datetime(
            on_date.year, on_date.month, on_date.day,
            hours, minutes, seconds, tzinfo=tz,
        )
    except ValueError:
        return None


def hours_between(time_in: datetime, time_out: datetime | None) -> float:
    """Hours from ``time_in`` to ``time_out``; 0 when open or negative."""
    if time_out is None:
        return 0.0
    return max(0.0, (time_out - time_in).total_seconds() / 3600)


# ---------------------------------------------------------------------------
# Row processing
# ---------------------------------------------------------------------------


def normalize_rows(rows: list[RawRow], tz: tzinfo | None = None) -> NormalizedBatch:
    """Validate rows in order, returning records and ``Row N`` diagnostics."""
    tz = tz or local_tz()
    batch = NormalizedBatch()

    for row_num, row in enumerate(rows, start=1):
        if not row.date or not row.time_in:
            batch.errors.append(f"Row {row_num}: Missing required fields (date or timeIn)")
            continue

        entry_date = parse_date_string(row.date, tz)
        if entry_date is None:
            msg = f"Row {row_num}: Invalid date format: {row.date}. Use YYYY-MM-DD format."
            logger.warning("Skipping row: %s", msg)
            batch.errors.append(msg)
            continue

        time_in = parse_time_string(row.time_in, entry_date, tz)
        if time_in is None:
            msg = (
                f"Row {row_num}: Invalid timeIn format: {row.time_in}. "
                "Use HH:MM AM/PM or HH:MM format."
            )
            logger.warning("Skipping row: %s", msg)
            batch.errors.append(msg)
            continue

        time_out = None
        if row.time_out:
            time_out = parse_time_string(row.time_out, entry_date, tz)
            if time_out is None:
                msg = (
                    f"Row {row_num}: Invalid timeOut format: {row.time_out}. "
                    "Use HH:MM AM/PM or HH:MM format."
                )
                logger.warning("Skipping row: %s", msg)
                batch.errors.append(msg)
                continue
            if time_out < time_in:
                warning = f"Row {row_num}: timeOut is earlier than timeIn; hours worked set to 0"
                logger.warning("%s", warning)
                batch.warnings.append(warning)

        try:
            record = DtrRecord(
                date=entry_date,
                time_in=time_in,
                time_out=time_out,
                hours_worked=hours_between(time_in, time_out),
                accomplishment=row.accomplishment,
            )
        except ValidationError as exc:
            for err in exc.errors():
                batch.errors.append(f"Row {row_num}: {err['loc'][0]}: {err['msg']}")
            continue
        batch.records.append((row_num, record))

    logger.info(
        "DTR rows normalized: valid=%d, errors=%d, warnings=%d",
        len(batch.records), len(batch.errors), len(batch.warnings),
    )
    return batch


def read_rows(
    content: bytes | str,
    fmt: ImportFormat,
    aliases: dict[str, tuple[str, ...]] = FIELD_ALIASES,
) -> list[RawRow]:
    if fmt == "csv":
        return read_csv_rows(content, aliases)
    if fmt == "json":
        return read_json_rows(content, aliases)
    if fmt == "xlsx":
        if isinstance(content, str):
            raise ImportStructureError("Excel payload must be binary")
        return read_xlsx_rows(content, aliases)
    raise ImportStructureError(f"Unsupported import format '{fmt}'")


def normalize_payload(
    content: bytes | str,
    fmt: ImportFormat,
    aliases: dict[str, tuple[str, ...]] = FIELD_ALIASES,
    tz: tzinfo | None = None,
) -> NormalizedBatch:
    """
    Read ``content`` as ``fmt`` and normalize every row.

    Raises ``ImportStructureError`` before any row is processed when the
    payload's overall shape is wrong.
    """
    return normalize_rows(read_rows(content, fmt, aliases), tz)
