"""
Daily summary service.

Groups readings by local calendar day and computes per-day averages.
"""

import logging
from collections.abc import Sequence
from pathlib import Path

import pandas as pd

from bp_tracker.domain.reading import Reading
from bp_tracker.utils.exceptions import StorageError
from bp_tracker.utils.timezone_utils import local_date

logger = logging.getLogger(__name__)

NUMERIC_COLUMNS = ["systolic", "diastolic", "pulse"]
SUMMARY_COLUMNS = [
    "date",
    "avg_systolic",
    "avg_diastolic",
    "avg_pulse",
    "min_systolic",
    "max_systolic",
    "reading_count",
]


class DailySummaryService:
    """
    Service for summarizing readings by day.

    For each day, computes averages of systolic, diastolic and pulse, the
    systolic range and the number of readings.
    """

    def __init__(self, timezone: str = "UTC") -> None:
        self.timezone = timezone

    def summarize(self, readings: Sequence[Reading]) -> pd.DataFrame:
        """
        Build the per-day summary, oldest day first.

        Args:
            readings: Readings in any order.

        Returns:
            DataFrame with one row per day that has readings.
        """
        if not readings:
            logger.warning("No readings to summarize")
            return pd.DataFrame(columns=SUMMARY_COLUMNS)

        df = pd.DataFrame(
            {
                "date": [local_date(r.date, self.timezone) for r in readings],
                "systolic": [r.systolic for r in readings],
                "diastolic": [r.diastolic for r in readings],
                "pulse": [r.pulse for r in readings],
            }
        )

        grouped = df.groupby("date")
        daily = grouped[NUMERIC_COLUMNS].mean().round(1)
        daily.columns = [f"avg_{col}" for col in NUMERIC_COLUMNS]
        daily["min_systolic"] = grouped["systolic"].min()
        daily["max_systolic"] = grouped["systolic"].max()
        daily["reading_count"] = grouped.size()

        daily = daily.reset_index().sort_values("date")[SUMMARY_COLUMNS]

        logger.info(f"Summarized {len(df)} readings into {len(daily)} days")
        return daily.reset_index(drop=True)

    def write(self, readings: Sequence[Reading], output_file: Path) -> pd.DataFrame:
        """
        Summarize and write the result to a CSV file.

        Raises:
            StorageError: If the file cannot be written.
        """
        daily = self.summarize(readings)
        try:
            output_file.parent.mkdir(parents=True, exist_ok=True)
            daily.to_csv(output_file, index=False)
        except OSError as e:
            raise StorageError(f"Failed to write daily summary to {output_file}: {e}") from e

        logger.info(f"Wrote daily summary to {output_file}")
        return daily
