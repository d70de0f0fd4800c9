"""Unit tests for blood pressure classification."""

from datetime import datetime, timedelta

import pytz

from bp_tracker.domain import classification
from bp_tracker.domain.classification import SeverityBucket
from bp_tracker.domain.reading import Reading


def test_severity_bucket_boundaries() -> None:
    """Test severity buckets at their thresholds."""
    cases = [
        ((140, 70), SeverityBucket.CRITICAL),
        ((110, 90), SeverityBucket.CRITICAL),
        ((139, 84), SeverityBucket.HIGH),
        ((120, 85), SeverityBucket.HIGH),
        ((121, 80), SeverityBucket.ELEVATED),
        ((120, 81), SeverityBucket.ELEVATED),
        ((120, 80), SeverityBucket.OPTIMAL),
        ((89, 70), SeverityBucket.LOW),
        ((110, 59), SeverityBucket.LOW),
        ((90, 60), SeverityBucket.OPTIMAL),
    ]

    for (systolic, diastolic), expected in cases:
        bucket = classification.severity_bucket(systolic, diastolic)
        if bucket != expected:
            raise AssertionError(f"Expected {systolic}/{diastolic} -> {expected}, got {bucket}")


def test_higher_severity_wins() -> None:
    """Test that a reading high on one axis and low on the other is not 'low'."""
    bucket = classification.severity_bucket(145, 55)
    if bucket != SeverityBucket.CRITICAL:
        raise AssertionError(f"Expected critical for 145/55, got {bucket}")


def test_status_labels_and_colors() -> None:
    """Test calendar labels and colour ids."""
    if classification.status_label(150, 95) != "🚨 Critical":
        raise AssertionError("Expected critical label for 150/95")
    if classification.status_label(118, 76) != "✅ Optimal":
        raise AssertionError("Expected optimal label for 118/76")
    if classification.calendar_color_id(132, 80) != "6":
        raise AssertionError("Expected colour id 6 for 132/80")
    if classification.calendar_color_id(85, 55) != "7":
        raise AssertionError("Expected colour id 7 for 85/55")


def test_esh_classification_priority() -> None:
    """Test ESH 2023 categories in priority order."""
    cases = [
        ((225, 100), classification.HYPERTENSIVE_CRISIS),
        ((150, 120), classification.HYPERTENSIVE_CRISIS),
        ((85, 55), classification.HYPOTENSION),
        ((150, 85), classification.ISOLATED_SYSTOLIC),
        ((185, 95), classification.GRADE_3),
        ((150, 112), classification.GRADE_3),
        ((165, 95), classification.GRADE_2),
        ((145, 92), classification.GRADE_1),
        ((132, 84), classification.HIGH_NORMAL),
        ((122, 79), classification.NORMAL),
        ((110, 70), classification.OPTIMAL),
    ]

    for (systolic, diastolic), expected in cases:
        category = classification.classify_blood_pressure(systolic, diastolic)
        if category != expected:
            raise AssertionError(
                f"Expected {systolic}/{diastolic} -> {expected.short}, got {category.short}"
            )


def test_derived_measures() -> None:
    """Test MAP, pulse pressure and urgency flags."""
    analysis = classification.analyze_blood_pressure(120, 80)

    if analysis.map != 93:
        raise AssertionError(f"Expected MAP 93, got {analysis.map}")
    if analysis.pulse_pressure != 40:
        raise AssertionError(f"Expected pulse pressure 40, got {analysis.pulse_pressure}")
    if analysis.map_assessment[0] != "normal":
        raise AssertionError(f"Expected normal MAP, got {analysis.map_assessment[0]}")
    if analysis.requires_urgent_care or analysis.is_emergency:
        raise AssertionError("Expected 120/80 to need no urgent care")

    if not classification.requires_urgent_care(180, 100):
        raise AssertionError("Expected 180/100 to require urgent care")
    if not classification.is_emergency(200, 120):
        raise AssertionError("Expected 200/120 to be an emergency")


def test_trend_analysis() -> None:
    """Test trend direction between oldest and newest thirds."""
    start = datetime(2024, 1, 1, 8, 0, tzinfo=pytz.UTC)
    values = [150, 148, 149, 140, 138, 139, 130, 128, 129]
    readings = [
        Reading(
            id=f"r{i}",
            date=start + timedelta(days=i),
            systolic=value,
            diastolic=85,
            pulse=70,
        )
        for i, value in enumerate(values)
    ]

    analysis = classification.analyze_trend(readings)
    if analysis.trend != "improving":
        raise AssertionError(f"Expected improving trend, got {analysis.trend}")

    analysis = classification.analyze_trend(list(reversed(readings))[:2])
    if analysis.trend != "insufficient-data":
        raise AssertionError(f"Expected insufficient data, got {analysis.trend}")


def test_esh_categories_are_complete() -> None:
    """Test that every ESH category is distinct and carries guidance."""
    shorts = {category.short for category in classification.ESH_CATEGORIES}
    if len(shorts) != 9:
        raise AssertionError(f"Expected 9 distinct categories, got {sorted(shorts)}")

    for category in classification.ESH_CATEGORIES:
        if not category.recommendations or not category.risk_assessment:
            raise AssertionError(f"Expected guidance for {category.category}")
