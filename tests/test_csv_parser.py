"""Unit tests for CSV parser."""

from pathlib import Path

import pandas as pd
import pytest

from bp_tracker.infrastructure.parsers.csv_parser import CSVParser
from bp_tracker.utils.exceptions import ParsingError
from bp_tracker.utils.parameters import CSVConfig


def _parser(column_mappings: dict[str, str] | None = None) -> CSVParser:
    csv_config = CSVConfig(
        encodings=["utf-8", "latin-1"],
        delimiters=[";", ","],
        column_mappings=column_mappings or {},
    )
    return CSVParser(csv_config, "Europe/Madrid")


def test_normalize_spanish_columns() -> None:
    """Test normalization of Spanish column names."""
    parser = _parser()

    df = pd.DataFrame(
        {
            "Fecha": ["2024-01-15"],
            "Hora": ["10:30:00"],
            "Sistólica": [128],
            "Diastólica": [82],
            "Pulso": [71],
        }
    )

    normalized_df = parser._normalize_column_names(df)

    for column in ("date", "time", "systolic", "diastolic", "pulse"):
        if column not in normalized_df.columns:
            raise AssertionError(f"Expected '{column}' column after normalization")


def test_configured_mapping_and_case_insensitive_match() -> None:
    """Test configured headers and case-insensitive defaults."""
    parser = _parser({"Tensión alta": "systolic"})

    df = pd.DataFrame({"Tensión alta": [130], "DIASTOLIC": [85], "pulse": [60], "date": ["x"]})
    normalized_df = parser._normalize_column_names(df)

    if list(normalized_df.columns) != ["systolic", "diastolic", "pulse", "date"]:
        raise AssertionError(f"Unexpected columns: {list(normalized_df.columns)}")


def test_safe_int_conversion() -> None:
    """Test integer conversion of numbers and decimal strings."""
    parser = _parser()

    if parser._safe_int_conversion("121,6") != 122:
        raise AssertionError("Expected '121,6' to convert to 122")
    if parser._safe_int_conversion(79.0) != 79:
        raise AssertionError("Expected 79.0 to convert to 79")
    if parser._safe_int_conversion("n/a") is not None:
        raise AssertionError("Expected None for non-numeric text")
    if parser._safe_int_conversion(float("nan")) is not None:
        raise AssertionError("Expected None for NaN")


def test_parse_file_skips_bad_rows(tmp_path: Path) -> None:
    """Test parsing a semicolon-delimited file with one invalid row."""
    csv_path = tmp_path / "readings.csv"
    csv_path.write_text(
        "Fecha;Hora;Sistólica;Diastólica;Pulso;Notas\n"
        "2024-01-15;08:30;128;82;71;mañana\n"
        "2024-01-15;20:00;999;82;71;\n"
        "2024-01-16;08:15;121;79;68;\n",
        encoding="utf-8",
    )

    result = _parser().parse(csv_path)

    if len(result.readings) != 2:
        raise AssertionError(f"Expected 2 readings, got {len(result.readings)}")
    if [row.row for row in result.skipped] != [3]:
        raise AssertionError(f"Expected row 3 to be skipped, got {result.skipped}")

    first = result.readings[0]
    if (first.systolic, first.diastolic, first.pulse) != (128, 82, 71):
        raise AssertionError(f"Unexpected values: {first}")
    if first.notes != "mañana":
        raise AssertionError(f"Expected notes 'mañana', got {first.notes}")
    if first.date.utcoffset() is None or first.date.hour != 8:
        raise AssertionError(f"Expected local 08:30 in Madrid, got {first.date}")
    if result.readings[1].notes is not None:
        raise AssertionError("Expected empty notes to become None")


def test_parse_file_missing_columns(tmp_path: Path) -> None:
    """Test that a file without pressure columns is rejected."""
    csv_path = tmp_path / "weights.csv"
    csv_path.write_text("Fecha,Peso\n2024-01-15,75.5\n", encoding="utf-8")

    with pytest.raises(ParsingError):
        _parser().parse(csv_path)
