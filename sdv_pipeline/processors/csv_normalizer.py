"""
Normalizer for the two-header-row clinical exports.

Row 1 holds human labels and is ignored, row 2 holds machine column names,
data starts on row 3. Records keep only the columns of their dataset schema.
"""

import csv
import io
import itertools
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .base_processor import BaseProcessor
from ..core.constants import (
    HEADER_ROW_COUNT,
    IDENTIFIER_COLUMN,
    MERGE_KEY_COLUMNS,
    MERGE_KEY_SEPARATOR,
    MIN_CSV_ROWS,
    SDV_DATA_COLUMNS,
    SITE_DATA_ENTRY_COLUMNS,
)
from ..core.enums import JobType
from ..core.exceptions import MalformedInput, SchemaMismatch


@dataclass(frozen=True)
class DatasetSchema:
    """Required columns of one export kind and the record attribute each feeds."""

    job_type: JobType
    field_map: Dict[str, str]
    identifier_column: str = IDENTIFIER_COLUMN

    @property
    def columns(self) -> List[str]:
        return list(self.field_map)


SITE_DATA_ENTRY_SCHEMA = DatasetSchema(
    job_type=JobType.SITE_DATA_ENTRY,
    field_map=dict(zip(SITE_DATA_ENTRY_COLUMNS, [
        "site_name",
        "subject_id",
        "event_name",
        "form_name",
        "item_id",
        "item_export_label",
        "edit_date_time",
        "edit_by",
    ])),
)

SDV_DATA_SCHEMA = DatasetSchema(
    job_type=JobType.SDV_DATA,
    field_map=dict(zip(SDV_DATA_COLUMNS, [
        "site_name",
        "subject_id",
        "event_name",
        "form_name",
        "item_id",
        "item_name",
        "sdv_by",
        "sdv_date",
    ])),
)

SCHEMAS = {
    JobType.SITE_DATA_ENTRY: SITE_DATA_ENTRY_SCHEMA,
    JobType.SDV_DATA: SDV_DATA_SCHEMA,
}


def schema_for(job_type: Union[JobType, str]) -> DatasetSchema:
    return SCHEMAS[JobType(job_type)]


def build_merge_key(subject_id: Optional[str], event_name: Optional[str],
                    form_name: Optional[str], item_id: Optional[str]) -> str:
    """``subject|event|form|item`` with every component trimmed."""
    parts = (subject_id, event_name, form_name, item_id)
    return MERGE_KEY_SEPARATOR.join((part or "").strip() for part in parts)


@dataclass
class NormalizedRecord:
    row_number: int
    values: Dict[str, str]
    merge_key: str

    def as_fields(self, schema: DatasetSchema) -> Dict[str, str]:
        """Values keyed by record attribute name instead of CSV column."""
        return {attribute: self.values.get(column, "") for column, attribute in schema.field_map.items()}


@dataclass
class FailedRow:
    row_number: int
    line_number: int
    error: str

    def to_dict(self) -> Dict[str, Union[int, str]]:
        return {"row": self.row_number, "line": self.line_number, "error": self.error}


@dataclass
class NormalizationResult:
    records: List[NormalizedRecord] = field(default_factory=list)
    failed_rows: List[FailedRow] = field(default_factory=list)
    skipped_rows: int = 0
    headers: List[str] = field(default_factory=list)
    column_map: Dict[str, int] = field(default_factory=dict)

    @property
    def data_rows(self) -> int:
        return len(self.records) + len(self.failed_rows) + self.skipped_rows


class CSVNormalizer(BaseProcessor):
    """
    Parse a two-header-row CSV into flat records for one dataset schema.

    Rows the CSV reader rejects, and rows too short to hold every mapped
    column, are reported in ``failed_rows`` while the rest of the file keeps
    being read. Rows with an empty subject id are dropped without error.
    """

    def __init__(self, schema: DatasetSchema, encoding: Optional[str] = None, delimiter: str = ","):
        super().__init__(encoding=encoding)
        self.schema = schema
        self.delimiter = delimiter

    def _read_rows(self, text: str) -> Iterator[Tuple[int, Optional[List[str]], Optional[str]]]:
        """Yield ``(line_number, row, error)`` for every non-blank row."""
        reader = csv.reader(io.StringIO(text, newline=""), delimiter=self.delimiter, strict=True)
        while True:
            try:
                row = next(reader)
            except StopIteration:
                return
            except csv.Error as e:
                yield reader.line_num, None, str(e)
                continue

            if not row or all(not cell.strip() for cell in row):
                continue
            yield reader.line_num, row, None

    def build_column_map(self, headers: Sequence[str]) -> Dict[str, int]:
        """Map each required column to its index in ``headers``, ignoring case and padding."""
        lookup: Dict[str, int] = {}
        for index, header in enumerate(headers):
            lookup.setdefault(header.strip().lower(), index)

        column_map = {}
        for column in self.schema.columns:
            index = lookup.get(column.lower())
            if index is not None:
                column_map[column] = index

        if self.schema.identifier_column not in column_map:
            raise SchemaMismatch(
                f"CSV missing required column: {self.schema.identifier_column}. "
                f"Found headers: {', '.join(headers)}",
                missing_columns=[c for c in self.schema.columns if c not in column_map],
                found_headers=list(headers),
            )

        missing = [c for c in self.schema.columns if c not in column_map]
        if missing:
            self.logger.warning(f"Optional columns missing from {self.schema.job_type.value} export: {missing}")

        return column_map

    def normalize(self, content: Union[str, bytes]) -> NormalizationResult:
        rows = self._read_rows(self.decode(content))

        header_rows = []
        for line_number, row, error in rows:
            if error:
                raise MalformedInput(
                    f"Could not parse header row on line {line_number}: {error}",
                    details={"line": line_number},
                )
            header_rows.append(row)
            if len(header_rows) == HEADER_ROW_COUNT:
                break

        first_data_row = next(rows, None)
        if len(header_rows) < HEADER_ROW_COUNT or first_data_row is None:
            raise MalformedInput(
                f"CSV file must have at least {MIN_CSV_ROWS} rows (2 header rows + data)",
                details={"rows_found": len(header_rows)},
            )

        headers = [header.strip() for header in header_rows[1]]
        column_map = self.build_column_map(headers)
        result = NormalizationResult(headers=headers, column_map=column_map)

        min_width = max(column_map.values()) + 1
        identifier_index = column_map[self.schema.identifier_column]

        data_rows = itertools.chain([first_data_row], rows)
        for row_number, (line_number, row, error) in enumerate(data_rows, start=1):
            if error:
                result.failed_rows.append(FailedRow(row_number, line_number, error))
                continue

            if len(row) < min_width:
                result.failed_rows.append(FailedRow(
                    row_number, line_number, f"expected at least {min_width} fields, found {len(row)}"
                ))
                continue

            if not row[identifier_index].strip():
                result.skipped_rows += 1
                continue

            values = {column: row[index].strip() for column, index in column_map.items()}
            merge_key = build_merge_key(*(values.get(column) for column in MERGE_KEY_COLUMNS))
            result.records.append(NormalizedRecord(row_number, values, merge_key))

        if result.failed_rows:
            self.logger.warning(
                f"{len(result.failed_rows)} of {result.data_rows} rows could not be parsed "
                f"in {self.schema.job_type.value} export"
            )

        return result

    def serialize(self, records: Iterable[NormalizedRecord]) -> bytes:
        """
        Write records back out as a two-header-row CSV of the schema columns.

        The output normalizes to the same records, so staged chunks can be
        parsed by the same code path as the original upload.
        """
        buffer = io.StringIO(newline="")
        writer = csv.writer(buffer, delimiter=self.delimiter, lineterminator="\n")
        columns = self.schema.columns
        writer.writerow(columns)
        writer.writerow(columns)
        for record in records:
            writer.writerow([record.values.get(column, "") for column in columns])
        return buffer.getvalue().encode("utf-8")
