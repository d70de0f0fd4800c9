"""
CSV parser for blood pressure readings.

Provides robust CSV parsing with encoding detection, delimiter detection,
column name normalization, and safe integer conversion. Rows that cannot be
turned into a valid reading are skipped and reported.
"""

import logging
import numbers
from pathlib import Path
from typing import Any

import pandas as pd
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from bp_tracker.domain.reading import ReadingCreate
from bp_tracker.utils.exceptions import ParsingError
from bp_tracker.utils.parameters import CSVConfig
from bp_tracker.utils.timezone_utils import parse_datetime

logger = logging.getLogger(__name__)

# Header spellings recognised without configuration. Configured mappings win.
DEFAULT_COLUMN_MAPPINGS = {
    "Date": "date",
    "Fecha": "date",
    "Time": "time",
    "Hora": "time",
    "Timestamp": "timestamp",
    "Systolic": "systolic",
    "Sistólica": "systolic",
    "Sistolica": "systolic",
    "SYS": "systolic",
    "Diastolic": "diastolic",
    "Diastólica": "diastolic",
    "Diastolica": "diastolic",
    "DIA": "diastolic",
    "Pulse": "pulse",
    "Pulso": "pulse",
    "Heart Rate": "pulse",
    "Notes": "notes",
    "Notas": "notes",
}


class RowError(BaseModel):
    """A CSV row that was skipped, with the reason."""

    row: int
    message: str


class CSVImportResult(BaseModel):
    """Readings parsed from a file and the rows that were skipped."""

    readings: list[ReadingCreate] = Field(default_factory=list)
    skipped: list[RowError] = Field(default_factory=list)


class CSVParser:
    """
    Parser for CSV blood pressure exports.

    Handles encoding detection, delimiter detection, column normalization,
    and conversion to ``ReadingCreate`` payloads.
    """

    def __init__(self, csv_config: CSVConfig, timezone: str = "UTC") -> None:
        """
        Initialize CSV parser.

        Args:
            csv_config: CSV parsing configuration.
            timezone: Timezone assumed for timestamps without an offset.
        """
        self.csv_config = csv_config
        self.timezone = timezone
        self.column_mappings = {**DEFAULT_COLUMN_MAPPINGS, **csv_config.column_mappings}

    def _detect_encoding(self, file_path: Path) -> str:
        for encoding in self.csv_config.encodings:
            try:
                with open(file_path, encoding=encoding) as f:
                    f.read()
                logger.debug(f"Detected encoding: {encoding}")
                return encoding
            except (UnicodeDecodeError, LookupError):
                continue

        logger.warning("Encoding detection failed, using utf-8")
        return "utf-8"

    def _detect_delimiter(self, file_path: Path, encoding: str) -> str:
        with open(file_path, encoding=encoding) as f:
            first_line = f.readline()

        for delimiter in self.csv_config.delimiters:
            if delimiter in first_line:
                logger.debug(f"Detected delimiter: {repr(delimiter)}")
                return delimiter

        logger.warning("Delimiter detection failed, using comma")
        return ","

    def _normalize_column_names(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Normalize column names to the reading schema.

        Headers are matched exactly first, then case-insensitively.
        """
        lowered = {key.lower(): value for key, value in self.column_mappings.items()}
        rename_map = {}

        for col in df.columns:
            col_stripped = str(col).strip()
            target = self.column_mappings.get(col_stripped) or lowered.get(col_stripped.lower())
            if target:
                rename_map[col] = target

        if rename_map:
            df = df.rename(columns=rename_map)
            logger.debug(f"Normalized columns: {list(rename_map.values())}")

        return df

    def _safe_int_conversion(self, value: Any) -> int | None:
        """
        Safely convert value to int, rounding decimals written with a comma or a dot.

        Returns:
            Integer value or None if conversion fails.
        """
        if pd.isna(value):
            return None

        if isinstance(value, numbers.Real):
            return int(round(value))

        if isinstance(value, str):
            value = value.strip().replace(",", ".")
            try:
                return int(round(float(value)))
            except ValueError:
                return None

        return None

    @staticmethod
    def _optional_text(value: Any) -> str | None:
        if pd.isna(value):
            return None
        text = str(value).strip()
        return text or None

    def parse(self, file_path: Path) -> CSVImportResult:
        """
        Parse a CSV file into reading payloads.

        Args:
            file_path: Path to CSV file.

        Returns:
            Parsed readings and the skipped rows.

        Raises:
            ParsingError: If the file cannot be read or lacks required columns.
        """
        try:
            encoding = self._detect_encoding(file_path)
            delimiter = self._detect_delimiter(file_path, encoding)
            df = pd.read_csv(file_path, encoding=encoding, sep=delimiter)
        except (OSError, ValueError) as e:
            raise ParsingError(f"Failed to read CSV file {file_path}: {e}") from e

        df = self._normalize_column_names(df)

        missing = {"systolic", "diastolic", "pulse"} - set(df.columns)
        if missing:
            raise ParsingError(
                f"CSV file {file_path.name} is missing column(s): {', '.join(sorted(missing))}"
            )
        if "date" not in df.columns and "timestamp" not in df.columns:
            raise ParsingError(f"CSV file {file_path.name} has no date or timestamp column")

        result = CSVImportResult()

        for idx, row in df.iterrows():
            # Spreadsheet row number, counting the header
            row_number = int(idx) + 2
            try:
                if "date" in df.columns:
                    time_value = row.get("time") if "time" in df.columns else None
                    date = parse_datetime(
                        str(row["date"]),
                        None if time_value is None or pd.isna(time_value) else str(time_value),
                        self.timezone,
                    )
                else:
                    date = parse_datetime(str(row["timestamp"]), None, self.timezone)

                reading = ReadingCreate(
                    date=date,
                    systolic=self._safe_int_conversion(row.get("systolic")),
                    diastolic=self._safe_int_conversion(row.get("diastolic")),
                    pulse=self._safe_int_conversion(row.get("pulse")),
                    notes=self._optional_text(row.get("notes")),
                )
                result.readings.append(reading)

            except (PydanticValidationError, ValueError, OverflowError) as e:
                logger.warning(f"Skipping row {row_number}: {e}")
                result.skipped.append(RowError(row=row_number, message=str(e)))

        logger.info(
            f"Parsed {len(result.readings)} readings from {file_path.name}, "
            f"skipped {len(result.skipped)} rows"
        )
        return result
