# src/services/portfolio_service/app/services/csv_digester.py
import csv
from io import StringIO
from typing import Dict, List, Sequence, Union

from portools_common.models import Lot
from portools_common.validation import Invalid

# Required columns, in Lot.from_strings argument order
LOT_COLUMNS = ("account", "symbol", "date_acquired", "quantity", "cost_per_share")


class CsvError(ValueError):
    """Base class for a CSV upload that cannot be turned into lots."""


class CsvHeaderError(CsvError):
    def __init__(self, cause: str):
        self.cause = cause
        super().__init__(f"Could not read CSV header: {cause}")


class MissingHeaderError(CsvError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"CSV is missing the '{name}' column.")


class CsvRecordError(CsvError):
    """A data row could not be read (wrong number of fields, bad quoting)."""
    def __init__(self, row: int, cause: str):
        self.row = row
        self.cause = cause
        super().__init__(f"Row {row}: {cause}")


class CsvRecordInvalidError(CsvError):
    """A data row was read but is not a valid lot."""
    def __init__(self, row: int, invalid: Invalid):
        self.row = row
        self.invalid = invalid
        super().__init__(f"Row {row}: {invalid}")


def _header_index(headers: Sequence[str]) -> Dict[str, int]:
    return {header.strip().lower(): i for i, header in enumerate(headers)}


def digest_lots(content: Union[bytes, str]) -> List[Lot]:
    """
    Parses a CSV of lots. Header names are matched ignoring case and
    surrounding whitespace, in any column order; cell values are trimmed.
    Rows are numbered from 0, excluding the header. Blank lines are ignored.
    The first problem found is raised as a CsvError.
    """
    try:
        text = content.decode("utf-8-sig") if isinstance(content, bytes) else content
    except UnicodeDecodeError as e:
        raise CsvHeaderError(str(e)) from e

    reader = csv.reader(StringIO(text), strict=True)
    try:
        headers = next(reader, None)
    except csv.Error as e:
        raise CsvHeaderError(str(e)) from e
    if headers is None:
        raise MissingHeaderError(LOT_COLUMNS[0])

    index = _header_index(headers)
    for name in LOT_COLUMNS:
        if name not in index:
            raise MissingHeaderError(name)

    lots: List[Lot] = []
    row = 0
    while True:
        try:
            record = next(reader, None)
        except csv.Error as e:
            raise CsvRecordError(row, str(e)) from e
        if record is None:
            break
        if not any(cell.strip() for cell in record):
            continue
        if len(record) != len(headers):
            raise CsvRecordError(row, f"found record with {len(record)} fields, but the header has {len(headers)}")

        values = [record[index[name]].strip() for name in LOT_COLUMNS]
        try:
            lots.append(Lot.from_strings(*values))
        except Invalid as e:
            raise CsvRecordInvalidError(row, e) from e
        row += 1
    return lots
