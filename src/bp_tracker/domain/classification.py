"""
Blood pressure classification.

Two schemes live here: the coarse severity bucket used to colour and label
calendar events, and the European Society of Hypertension (ESH) 2023
classification with its derived measures (MAP, pulse pressure).
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from bp_tracker.domain.reading import Reading
from bp_tracker.utils.rounding import round_half_up


class SeverityBucket(str, Enum):
    """Clinical severity bucket of a single reading."""

    CRITICAL = "critical"
    HIGH = "high"
    ELEVATED = "elevated"
    LOW = "low"
    OPTIMAL = "optimal"


# Google Calendar colour ids: 5 Banana, 6 Tangerine, 7 Peacock, 10 Basil, 11 Tomato
SEVERITY_COLOR_IDS: dict[SeverityBucket, str] = {
    SeverityBucket.CRITICAL: "11",
    SeverityBucket.HIGH: "6",
    SeverityBucket.ELEVATED: "5",
    SeverityBucket.LOW: "7",
    SeverityBucket.OPTIMAL: "10",
}

SEVERITY_LABELS: dict[SeverityBucket, str] = {
    SeverityBucket.CRITICAL: "🚨 Critical",
    SeverityBucket.HIGH: "⚠️ High",
    SeverityBucket.ELEVATED: "📈 Elevated",
    SeverityBucket.LOW: "💙 Low",
    SeverityBucket.OPTIMAL: "✅ Optimal",
}


def severity_bucket(systolic: int, diastolic: int) -> SeverityBucket:
    """
    Bucket a reading by severity.

    The checks run from most to least severe, so a reading that is both high
    and low on different axes lands in the higher bucket.
    """
    if systolic >= 140 or diastolic >= 90:
        return SeverityBucket.CRITICAL
    if systolic >= 130 or diastolic >= 85:
        return SeverityBucket.HIGH
    if systolic > 120 or diastolic > 80:
        return SeverityBucket.ELEVATED
    if systolic < 90 or diastolic < 60:
        return SeverityBucket.LOW
    return SeverityBucket.OPTIMAL


def calendar_color_id(systolic: int, diastolic: int) -> str:
    """Return the Google Calendar colour id for a reading."""
    return SEVERITY_COLOR_IDS[severity_bucket(systolic, diastolic)]


def status_label(systolic: int, diastolic: int) -> str:
    """Return the human readable status used in event titles."""
    return SEVERITY_LABELS[severity_bucket(systolic, diastolic)]


class RiskLevel(str, Enum):
    """Cardiovascular risk attached to an ESH category."""

    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    VERY_HIGH = "very-high"
    CRITICAL = "critical"


RISK_MESSAGES: dict[RiskLevel, str] = {
    RiskLevel.LOW: "Low cardiovascular risk - maintain healthy habits",
    RiskLevel.MODERATE: "Moderate risk - lifestyle changes recommended",
    RiskLevel.HIGH: "High risk - medical consultation advised",
    RiskLevel.VERY_HIGH: "Very high risk - medical treatment recommended",
    RiskLevel.CRITICAL: "Critical - urgent/emergency medical attention required",
}


@dataclass(frozen=True)
class BPCategory:
    """One ESH 2023 blood pressure category."""

    category: str
    short: str
    risk_level: RiskLevel
    description: str
    recommendations: tuple[str, ...] = field(default_factory=tuple)

    @property
    def risk_assessment(self) -> str:
        return RISK_MESSAGES[self.risk_level]


OPTIMAL = BPCategory(
    "Optimal",
    "Optimal",
    RiskLevel.LOW,
    "Blood pressure is in the optimal range",
    (
        "Maintain a healthy lifestyle",
        "Regular physical activity",
        "Monitor blood pressure periodically",
    ),
)
NORMAL = BPCategory(
    "Normal",
    "Normal",
    RiskLevel.LOW,
    "Blood pressure is normal",
    ("Maintain healthy lifestyle habits", "Avoid excessive salt intake"),
)
HIGH_NORMAL = BPCategory(
    "High Normal",
    "High-Normal",
    RiskLevel.MODERATE,
    "Blood pressure is high-normal (prehypertension)",
    (
        "Adopt lifestyle modifications",
        "Reduce sodium intake (<5g/day)",
        "Increase physical activity (150 min/week)",
    ),
)
GRADE_1 = BPCategory(
    "Grade 1 Hypertension (Mild)",
    "Grade 1 HTN",
    RiskLevel.HIGH,
    "Mild hypertension - medical consultation recommended",
    ("Consult healthcare provider", "Monitor blood pressure at home"),
)
GRADE_2 = BPCategory(
    "Grade 2 Hypertension (Moderate)",
    "Grade 2 HTN",
    RiskLevel.VERY_HIGH,
    "Moderate hypertension - medical treatment recommended",
    ("Seek medical consultation promptly", "Regular blood pressure monitoring"),
)
GRADE_3 = BPCategory(
    "Grade 3 Hypertension (Severe)",
    "Grade 3 HTN",
    RiskLevel.CRITICAL,
    "Severe hypertension - immediate medical attention required",
    ("Seek immediate medical attention",),
)
ISOLATED_SYSTOLIC = BPCategory(
    "Isolated Systolic Hypertension",
    "ISH",
    RiskLevel.HIGH,
    "Elevated systolic with normal diastolic pressure",
    ("Consult healthcare provider",),
)
HYPOTENSION = BPCategory(
    "Hypotension (Low Blood Pressure)",
    "Low",
    RiskLevel.MODERATE,
    "Blood pressure is lower than normal",
    ("Stay hydrated", "Rise slowly from sitting or lying positions"),
)
HYPERTENSIVE_CRISIS = BPCategory(
    "Hypertensive Crisis",
    "Crisis",
    RiskLevel.CRITICAL,
    "Hypertensive crisis - emergency care required",
    ("Seek emergency medical care immediately",),
)

ESH_CATEGORIES: tuple[BPCategory, ...] = (
    OPTIMAL,
    NORMAL,
    HIGH_NORMAL,
    GRADE_1,
    GRADE_2,
    GRADE_3,
    ISOLATED_SYSTOLIC,
    HYPOTENSION,
    HYPERTENSIVE_CRISIS,
)


def classify_blood_pressure(systolic: int, diastolic: int) -> BPCategory:
    """
    Classify a reading according to the ESH 2023 guidelines.

    Categories are checked in priority order: crisis, hypotension, isolated
    systolic hypertension, then grades 3 to 1, high-normal, normal and optimal.
    When systolic and diastolic fall into different grades the higher one wins.
    """
    if systolic >= 220 or diastolic >= 120:
        return HYPERTENSIVE_CRISIS
    if systolic <= 89 and diastolic <= 59:
        return HYPOTENSION
    if systolic >= 140 and diastolic < 90:
        return ISOLATED_SYSTOLIC
    if systolic >= 180 or diastolic >= 110:
        return GRADE_3
    if systolic >= 160 or diastolic >= 100:
        return GRADE_2
    if systolic >= 140 or diastolic >= 90:
        return GRADE_1
    if systolic >= 130 or diastolic >= 85:
        return HIGH_NORMAL
    if systolic >= 120 or diastolic >= 80:
        return NORMAL
    return OPTIMAL


def requires_urgent_care(systolic: int, diastolic: int) -> bool:
    return systolic >= 180 or diastolic >= 110


def is_emergency(systolic: int, diastolic: int) -> bool:
    return systolic >= 220 or diastolic >= 120


def mean_arterial_pressure(systolic: int, diastolic: int) -> int:
    """MAP = DBP + (SBP - DBP) / 3, rounded. Normal range is 70-100 mmHg."""
    return round_half_up(diastolic + (systolic - diastolic) / 3)


def pulse_pressure(systolic: int, diastolic: int) -> int:
    return systolic - diastolic


def assess_pulse_pressure(value: int) -> tuple[str, str]:
    """Return ``(category, message)`` for a pulse pressure in mmHg."""
    if value < 40:
        return (
            "low",
            "Low pulse pressure - may indicate heart failure or aortic stenosis. "
            "Consult healthcare provider.",
        )
    if value <= 60:
        return "normal", "Normal pulse pressure - indicates good arterial compliance."
    return (
        "high",
        "High pulse pressure - may indicate arterial stiffness. "
        "More common in older adults. Consider consultation.",
    )


def assess_map(value: int) -> tuple[str, str]:
    """Return ``(category, message)`` for a mean arterial pressure in mmHg."""
    if value < 70:
        return (
            "low",
            "Low MAP - may indicate inadequate organ perfusion. "
            "Seek medical attention if symptomatic.",
        )
    if value <= 100:
        return "normal", "Normal MAP - adequate organ perfusion maintained."
    return (
        "high",
        "High MAP - indicates elevated overall cardiovascular load. "
        "Medical evaluation recommended.",
    )


@dataclass(frozen=True)
class BloodPressureAnalysis:
    """Full assessment of a single reading."""

    category: BPCategory
    map: int
    map_assessment: tuple[str, str]
    pulse_pressure: int
    pulse_pressure_assessment: tuple[str, str]
    requires_urgent_care: bool
    is_emergency: bool


def analyze_blood_pressure(systolic: int, diastolic: int) -> BloodPressureAnalysis:
    map_value = mean_arterial_pressure(systolic, diastolic)
    pp = pulse_pressure(systolic, diastolic)
    return BloodPressureAnalysis(
        category=classify_blood_pressure(systolic, diastolic),
        map=map_value,
        map_assessment=assess_map(map_value),
        pulse_pressure=pp,
        pulse_pressure_assessment=assess_pulse_pressure(pp),
        requires_urgent_care=requires_urgent_care(systolic, diastolic),
        is_emergency=is_emergency(systolic, diastolic),
    )


@dataclass(frozen=True)
class TrendAnalysis:
    """Direction of blood pressure over a set of readings."""

    average_category: BPCategory
    trend: str  # improving, stable, worsening or insufficient-data
    description: str
    high_risk_count: int
    emergency_count: int


def _signed(value: float) -> str:
    return f"{'+' if value >= 0 else ''}{value:.1f}"


def analyze_trend(readings: Sequence[Reading]) -> TrendAnalysis:
    """
    Compare the oldest third of the readings against the newest third.

    A drop of 5 mmHg systolic or 3 mmHg diastolic counts as improving, a rise
    of the same size as worsening. Fewer than 3 readings is insufficient data.
    """
    if not readings:
        return TrendAnalysis(OPTIMAL, "insufficient-data", "No readings available for analysis", 0, 0)

    avg_systolic = round_half_up(sum(r.systolic for r in readings) / len(readings))
    avg_diastolic = round_half_up(sum(r.diastolic for r in readings) / len(readings))
    average_category = classify_blood_pressure(avg_systolic, avg_diastolic)

    high_risk = sum(1 for r in readings if requires_urgent_care(r.systolic, r.diastolic))
    emergencies = sum(1 for r in readings if is_emergency(r.systolic, r.diastolic))

    if len(readings) < 3:
        return TrendAnalysis(
            average_category,
            "insufficient-data",
            "Need at least 3 readings for trend analysis",
            high_risk,
            emergencies,
        )

    ordered = sorted(readings, key=lambda r: r.date)
    third = len(ordered) // 3
    first, last = ordered[:third], ordered[-third:]

    systolic_change = sum(r.systolic for r in last) / third - sum(r.systolic for r in first) / third
    diastolic_change = (
        sum(r.diastolic for r in last) / third - sum(r.diastolic for r in first) / third
    )

    if systolic_change <= -5 or diastolic_change <= -3:
        trend, prefix = "improving", "Blood pressure is improving"
    elif systolic_change >= 5 or diastolic_change >= 3:
        trend, prefix = "worsening", "Blood pressure is increasing"
    else:
        trend, prefix = "stable", "Blood pressure is stable"

    description = (
        f"{prefix} (systolic {_signed(systolic_change)} mmHg, "
        f"diastolic {_signed(diastolic_change)} mmHg)"
    )
    return TrendAnalysis(average_category, trend, description, high_risk, emergencies)
