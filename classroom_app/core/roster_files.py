import csv
import io
import logging
from collections.abc import Iterator
from typing import IO, Any

from tablib import Databook, Dataset

from core.roster_errors import FileReadError, MissingColumn, UnsupportedFormat

logger = logging.getLogger(__name__)

RosterRecord = dict[str, str]

SUPPORTED_EXTENSIONS: tuple[str, ...] = (".csv", ".xlsx")


def roster_file_extension(filename: str) -> str:
    name = str(filename or "").strip().lower()
    _stem, dot, suffix = name.rpartition(".")
    if not dot:
        return ""
    return f".{suffix}"


def norm_header(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def _cell_text(value: object) -> str:
    if value is None:
        return ""
    return str(value)


def _read_upload(uploaded: IO[bytes] | Any) -> bytes:
    try:
        if hasattr(uploaded, "seek"):
            uploaded.seek(0)
        raw = uploaded.read()
    except OSError as exc:
        raise FileReadError(f"The uploaded file could not be read: {exc}") from exc

    if isinstance(raw, str):
        return raw.encode("utf-8")
    return bytes(raw or b"")


def _csv_records(raw: bytes) -> list[RosterRecord]:
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise FileReadError("The CSV file is not valid UTF-8 text.") from exc

    if not text.strip():
        return []

    try:
        rows = [row for row in csv.reader(io.StringIO(text)) if any(cell.strip() for cell in row)]
    except csv.Error as exc:
        raise FileReadError(f"Error parsing CSV file: {exc}") from exc
    if not rows:
        return []

    headers = [str(h or "").strip() for h in rows[0]]
    width = len(headers)
    # Ragged rows are fitted to the header row; extra trailing cells are dropped.
    dataset = Dataset(headers=headers)
    for row in rows[1:]:
        dataset.append((row + [""] * width)[:width])

    records: list[RosterRecord] = []
    for row in dataset:
        records.append({header: _cell_text(value) for header, value in zip(headers, row) if header})
    return records


def _xlsx_records(raw: bytes) -> list[RosterRecord]:
    try:
        book = Databook().load(raw, "xlsx")
    except Exception as exc:
        raise FileReadError(f"Error reading spreadsheet: {exc}") from exc

    sheets = book.sheets()
    if not sheets:
        raise MissingColumn()

    # Only the first worksheet is ever considered.
    sheet: Dataset = sheets[0]
    headers = list(sheet.headers or [])

    keys: list[str] = []
    for header in headers:
        normalized = norm_header(header)
        if normalized in ("email", "password"):
            keys.append(normalized)
        else:
            keys.append(str(header or "").strip())

    if "email" not in keys:
        raise MissingColumn()

    records: list[RosterRecord] = []
    for row in sheet:
        if all(value is None or str(value).strip() == "" for value in row):
            continue
        records.append({key: _cell_text(value) for key, value in zip(keys, row) if key})
    return records


def extract_roster_records(uploaded: IO[bytes] | Any, *, extension: str) -> Iterator[RosterRecord]:
    """Parse one uploaded roster file into raw records.

    ``.csv`` files use the header row as field names and tolerate rows without
    an ``email`` value. ``.xlsx`` files are read from the first sheet only and
    must have an ``email`` header, otherwise ``MissingColumn`` is raised before
    any record is produced.

    The records are fully materialized before the iterator is returned; the
    iterator itself is single-use.
    """

    normalized_extension = str(extension or "").strip().lower()
    if normalized_extension and not normalized_extension.startswith("."):
        normalized_extension = f".{normalized_extension}"
    if normalized_extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormat()

    raw = _read_upload(uploaded)

    if normalized_extension == ".csv":
        records = _csv_records(raw)
    else:
        records = _xlsx_records(raw)

    logger.debug("Roster file parsed extension=%s records=%d", normalized_extension, len(records))
    return iter(records)


__all__ = [
    "RosterRecord",
    "SUPPORTED_EXTENSIONS",
    "extract_roster_records",
    "norm_header",
    "roster_file_extension",
]
