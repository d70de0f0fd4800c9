"""
Command-line interface for the Blood Pressure Tracker.

Provides commands for recording readings, reviewing derived statistics,
managing targets, importing and exporting data, and syncing readings to
Google Calendar.
"""

import json
from datetime import datetime
from pathlib import Path

import pytz
import typer

from bp_tracker.domain.calendar import CalendarSyncConfig, SyncResult, SyncStatus
from bp_tracker.domain.classification import analyze_blood_pressure, analyze_trend, status_label
from bp_tracker.domain.reading import Reading, ReadingCreate, ReadingUpdate
from bp_tracker.infrastructure.parsers.csv_parser import CSVParser
from bp_tracker.infrastructure.storage.reading_store import ReadingStore
from bp_tracker.infrastructure.storage.settings_store import SyncConfigStore, TargetsStore
from bp_tracker.services import metrics
from bp_tracker.services.calendar_sync import CalendarSyncService
from bp_tracker.services.daily_summary import DailySummaryService
from bp_tracker.services.output import OutputService, google_calendar_link, import_instructions
from bp_tracker.utils.exceptions import BPTrackerError, ValidationError
from bp_tracker.utils.logging_config import get_logger, setup_logging
from bp_tracker.utils.parameters import ParameterLoader
from bp_tracker.utils.timezone_utils import make_timezone_aware, now_utc, parse_datetime

app = typer.Typer(help="Blood Pressure Tracker - readings, health metrics and calendar sync")
targets_app = typer.Typer(help="Manage blood pressure targets")
export_app = typer.Typer(help="Export readings to files")
calendar_app = typer.Typer(help="Google Calendar synchronization")
app.add_typer(targets_app, name="targets")
app.add_typer(export_app, name="export")
app.add_typer(calendar_app, name="calendar")

logger = get_logger(__name__)

CONFIG_OPTION = typer.Option("config/config.yaml", help="Path to configuration file")


def init_config(config_path: str = "config/config.yaml") -> ParameterLoader:
    """
    Initialize configuration and logging.

    Args:
        config_path: Path to configuration file.

    Returns:
        Parameter loader instance.
    """
    param_loader = ParameterLoader(config_path)
    setup_logging(param_loader.get_logging_config(), "bp_tracker")
    return param_loader


def _reading_store(param_loader: ParameterLoader) -> ReadingStore:
    return ReadingStore(param_loader.get_storage_config().readings_file)


def _targets_store(param_loader: ParameterLoader) -> TargetsStore:
    return TargetsStore(param_loader.get_storage_config().targets_file)


def _sync_store(param_loader: ParameterLoader) -> SyncConfigStore:
    return SyncConfigStore(param_loader.get_storage_config().sync_config_file)


def _sync_service(param_loader: ParameterLoader, store: ReadingStore) -> CalendarSyncService:
    return CalendarSyncService(
        param_loader.get_calendar_config(),
        store,
        timezone=param_loader.get_user_config().timezone,
    )


def _parse_when(value: str | None, timezone: str) -> datetime:
    if value is None:
        return now_utc()
    try:
        return parse_datetime(value, None, timezone)
    except (ValueError, OverflowError) as e:
        raise ValidationError(f"Invalid date: {value}") from e


def _fail(action: str, e: BPTrackerError) -> typer.Exit:
    logger.error(f"{action} failed: {e}")
    typer.echo(f"Error: {e}", err=True)
    return typer.Exit(code=1)


def _format_reading(reading: Reading, timezone: str) -> str:
    local = make_timezone_aware(reading.date, timezone)
    synced = " [synced]" if reading.synced_to_calendar else ""
    line = (
        f"{reading.id}  {local:%Y-%m-%d %H:%M}  "
        f"{reading.systolic}/{reading.diastolic} mmHg  {reading.pulse} bpm  "
        f"{status_label(reading.systolic, reading.diastolic)}{synced}"
    )
    if reading.notes:
        line += f"  ({reading.notes})"
    return line


def _echo_sync_result(result: SyncResult, label: str) -> None:
    typer.echo(f"{label}: {result.status.value}")
    typer.echo(f"  Readings processed: {result.total}")
    typer.echo(f"  Events created: {result.created}")
    typer.echo(f"  Marked synced: {result.marked_synced}")
    typer.echo(f"  Marked unsynced: {result.marked_unsynced}")
    if result.error:
        typer.echo(f"  Error: {result.error}", err=True)
    for item in result.errors:
        typer.echo(f"  Failed {item.reading_id}: {item.message}", err=True)


# ----------------------------------------------------------------------
# Readings
# ----------------------------------------------------------------------


@app.command()
def add(
    systolic: int = typer.Option(..., help="Systolic pressure (mmHg)"),
    diastolic: int = typer.Option(..., help="Diastolic pressure (mmHg)"),
    pulse: int = typer.Option(..., help="Pulse (bpm)"),
    date: str | None = typer.Option(None, help="When the reading was taken (default: now)"),
    notes: str | None = typer.Option(None, help="Free-text notes"),
    sync: bool | None = typer.Option(
        None, "--sync/--no-sync", help="Push to Google Calendar (default: auto_sync setting)"
    ),
    config_path: str = CONFIG_OPTION,
) -> None:
    """
    Record a new reading.

    When calendar auto-sync is on (or --sync is given) the reading is also
    pushed to Google Calendar. A failed push leaves the reading unsynced.
    """
    try:
        param_loader = init_config(config_path)
        timezone = param_loader.get_user_config().timezone
        store = _reading_store(param_loader)

        try:
            payload = ReadingCreate(
                date=_parse_when(date, timezone),
                systolic=systolic,
                diastolic=diastolic,
                pulse=pulse,
                notes=notes,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e

        reading = store.create(payload)
        typer.echo(f"Saved reading {_format_reading(reading, timezone)}")

        user_id = param_loader.get_user_config().id
        sync_store = _sync_store(param_loader)
        sync_config = sync_store.load(user_id)
        should_sync = sync if sync is not None else sync_config.auto_sync
        if should_sync and sync_config.is_connected:
            service = _sync_service(param_loader, store)
            try:
                event_id = service.create_event(reading, sync_config)
                typer.echo(f"Added to Google Calendar (event {event_id})")
            except BPTrackerError as e:
                logger.warning(f"Calendar push failed for reading {reading.id}: {e}")
                typer.echo(f"Warning: calendar sync failed: {e}", err=True)
            sync_store.save(user_id, sync_config)

    except BPTrackerError as e:
        raise _fail("Add", e) from e


@app.command("list")
def list_readings(
    limit: int | None = typer.Option(None, help="Show at most this many readings"),
    start: str | None = typer.Option(None, "--from", help="Earliest date to include"),
    end: str | None = typer.Option(None, "--to", help="Latest date to include"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """List readings, newest first."""
    try:
        param_loader = init_config(config_path)
        timezone = param_loader.get_user_config().timezone
        store = _reading_store(param_loader)

        if start or end:
            readings = store.list_by_date_range(
                _parse_when(start, timezone) if start else datetime.min.replace(tzinfo=pytz.utc),
                _parse_when(end, timezone) if end else now_utc(),
            )
        else:
            readings = store.list_readings()

        if limit is not None:
            readings = readings[:limit]

        if not readings:
            typer.echo("No readings found")
            return

        for reading in readings:
            typer.echo(_format_reading(reading, timezone))

    except BPTrackerError as e:
        raise _fail("List", e) from e


@app.command()
def edit(
    reading_id: str = typer.Argument(..., help="Reading id"),
    systolic: int | None = typer.Option(None, help="New systolic value"),
    diastolic: int | None = typer.Option(None, help="New diastolic value"),
    pulse: int | None = typer.Option(None, help="New pulse value"),
    date: str | None = typer.Option(None, help="New date"),
    notes: str | None = typer.Option(None, help="New notes"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """Edit a reading. A synced reading also has its calendar event updated."""
    try:
        param_loader = init_config(config_path)
        timezone = param_loader.get_user_config().timezone
        store = _reading_store(param_loader)

        changes = {
            key: value
            for key, value in {
                "systolic": systolic,
                "diastolic": diastolic,
                "pulse": pulse,
                "date": _parse_when(date, timezone) if date else None,
                "notes": notes,
            }.items()
            if value is not None
        }
        if not changes:
            raise ValidationError("Nothing to change")

        try:
            update = ReadingUpdate(**changes)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        reading = store.update(reading_id, update)
        typer.echo(f"Updated {_format_reading(reading, timezone)}")

        user_id = param_loader.get_user_config().id
        sync_store = _sync_store(param_loader)
        sync_config = sync_store.load(user_id)
        if reading.synced_to_calendar and sync_config.is_connected:
            try:
                _sync_service(param_loader, store).update_reading_event(reading, sync_config)
                typer.echo("Calendar event updated")
            except BPTrackerError as e:
                logger.warning(f"Calendar update failed for reading {reading.id}: {e}")
                typer.echo(f"Warning: calendar update failed: {e}", err=True)
            sync_store.save(user_id, sync_config)

    except BPTrackerError as e:
        raise _fail("Edit", e) from e


@app.command()
def delete(
    reading_id: str | None = typer.Argument(None, help="Reading id"),
    all_readings: bool = typer.Option(False, "--all", help="Delete every reading"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """Delete one reading, or all of them with --all."""
    try:
        param_loader = init_config(config_path)
        store = _reading_store(param_loader)

        if all_readings:
            if not yes:
                typer.confirm("Delete ALL readings?", abort=True)
            count = store.delete_all()
            typer.echo(f"Deleted {count} readings")
            return

        if reading_id is None:
            raise ValidationError("Give a reading id or --all")

        reading = store.get(reading_id)
        user_id = param_loader.get_user_config().id
        sync_store = _sync_store(param_loader)
        sync_config = sync_store.load(user_id)
        if reading.synced_to_calendar and sync_config.is_connected:
            try:
                if _sync_service(param_loader, store).delete_reading_event(reading, sync_config):
                    typer.echo("Calendar event deleted")
            except BPTrackerError as e:
                logger.warning(f"Calendar delete failed for reading {reading.id}: {e}")
                typer.echo(f"Warning: calendar event not deleted: {e}", err=True)
            sync_store.save(user_id, sync_config)

        store.delete(reading_id)
        typer.echo(f"Deleted reading {reading_id}")

    except BPTrackerError as e:
        raise _fail("Delete", e) from e


# ----------------------------------------------------------------------
# Metrics
# ----------------------------------------------------------------------


@app.command()
def stats(
    as_json: bool = typer.Option(False, "--json", help="Print every metric as JSON"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """Show lifetime statistics, today's numbers and the health score."""
    try:
        param_loader = init_config(config_path)
        user = param_loader.get_user_config()
        readings = _reading_store(param_loader).list_readings()
        targets = _targets_store(param_loader).get(user.id)

        if as_json:
            typer.echo(json.dumps(metrics.summary(readings, targets, timezone=user.timezone), indent=2))
            return

        totals = metrics.reading_stats(readings)
        today = metrics.today_stats(readings, targets, timezone=user.timezone)
        score = metrics.health_score(readings, targets, timezone=user.timezone)

        typer.echo(f"Total readings: {totals.total_readings}")
        typer.echo(
            f"Average: {totals.average_systolic}/{totals.average_diastolic} mmHg, "
            f"{totals.average_pulse} bpm"
        )
        typer.echo(f"Today: {today.today_readings} readings, {today.on_target} on target")
        if today.today_readings:
            typer.echo(f"  Average today: {today.avg_systolic}/{today.avg_diastolic} mmHg")
        typer.echo(f"Streak: {today.streak} day(s)")
        typer.echo(f"Health score: {score.score} ({score.category})")

    except BPTrackerError as e:
        raise _fail("Stats", e) from e


@app.command()
def score(config_path: str = CONFIG_OPTION) -> None:
    """Show the health score and its components."""
    try:
        param_loader = init_config(config_path)
        user = param_loader.get_user_config()
        readings = _reading_store(param_loader).list_readings()
        targets = _targets_store(param_loader).get(user.id)

        result = metrics.health_score(readings, targets, timezone=user.timezone)
        typer.echo(f"Health score: {result.score}/100 ({result.category})")
        typer.echo(f"  On target: {result.on_target_percentage}%")
        typer.echo(f"  Consistency: {result.consistency_percentage}%")
        typer.echo(f"  Trend (systolic+diastolic): {result.trend:+d} mmHg")
        typer.echo(f"  Streak: {result.streak} day(s)")

    except BPTrackerError as e:
        raise _fail("Score", e) from e


@app.command()
def goals(config_path: str = CONFIG_OPTION) -> None:
    """Show weekly progress against targets and unlocked achievements."""
    try:
        param_loader = init_config(config_path)
        user = param_loader.get_user_config()
        readings = _reading_store(param_loader).list_readings()
        targets = _targets_store(param_loader).get(user.id)

        progress = metrics.goals_progress(readings, targets, timezone=user.timezone)
        typer.echo(
            f"7-reading average: {progress.avg_systolic}/{progress.avg_diastolic} mmHg "
            f"(target {targets.systolic}/{targets.diastolic})"
        )
        typer.echo(f"  Systolic progress: {progress.systolic_progress}%")
        typer.echo(f"  Diastolic progress: {progress.diastolic_progress}%")
        typer.echo(f"Readings this week: {progress.weekly_readings}")
        typer.echo(f"Streak: {progress.streak} day(s)")

        unlocked = progress.achievements.unlocked()
        typer.echo(f"Achievements: {', '.join(unlocked) if unlocked else 'none yet'}")

    except BPTrackerError as e:
        raise _fail("Goals", e) from e


@app.command()
def analyze(
    reading_id: str | None = typer.Argument(None, help="Reading id (default: latest)"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """ESH 2023 classification of a reading and the overall trend."""
    try:
        param_loader = init_config(config_path)
        store = _reading_store(param_loader)
        readings = store.list_readings()
        if not readings:
            typer.echo("No readings to analyze")
            return

        reading = store.get(reading_id) if reading_id else readings[0]
        analysis = analyze_blood_pressure(reading.systolic, reading.diastolic)

        typer.echo(f"Reading {reading.systolic}/{reading.diastolic} mmHg")
        typer.echo(f"  Category: {analysis.category.category}")
        typer.echo(f"  Risk: {analysis.category.risk_assessment}")
        typer.echo(f"  MAP: {analysis.map} mmHg ({analysis.map_assessment[0]})")
        typer.echo(
            f"  Pulse pressure: {analysis.pulse_pressure} mmHg "
            f"({analysis.pulse_pressure_assessment[0]})"
        )
        for recommendation in analysis.category.recommendations:
            typer.echo(f"  - {recommendation}")
        if analysis.is_emergency:
            typer.echo("  EMERGENCY: seek medical care immediately", err=True)
        elif analysis.requires_urgent_care:
            typer.echo("  Urgent medical evaluation recommended", err=True)

        trend = analyze_trend(readings)
        typer.echo(f"Trend: {trend.trend} - {trend.description}")

    except BPTrackerError as e:
        raise _fail("Analyze", e) from e


# ----------------------------------------------------------------------
# Targets
# ----------------------------------------------------------------------


@targets_app.command("show")
def targets_show(config_path: str = CONFIG_OPTION) -> None:
    """Show the current targets."""
    try:
        param_loader = init_config(config_path)
        targets = _targets_store(param_loader).get(param_loader.get_user_config().id)
        typer.echo(f"Systolic: {targets.systolic} mmHg")
        typer.echo(f"Diastolic: {targets.diastolic} mmHg")
        typer.echo(f"Pulse: {targets.pulse} bpm")
    except BPTrackerError as e:
        raise _fail("Targets", e) from e


@targets_app.command("set")
def targets_set(
    systolic: int | None = typer.Option(None, help="Systolic target (80-200)"),
    diastolic: int | None = typer.Option(None, help="Diastolic target (50-120)"),
    pulse: int | None = typer.Option(None, help="Pulse target (50-120)"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """Change one or more targets."""
    try:
        param_loader = init_config(config_path)
        targets = _targets_store(param_loader).update(
            param_loader.get_user_config().id,
            systolic=systolic,
            diastolic=diastolic,
            pulse=pulse,
        )
        typer.echo(
            f"Targets saved: {targets.systolic}/{targets.diastolic} mmHg, pulse {targets.pulse}"
        )
    except BPTrackerError as e:
        raise _fail("Targets", e) from e


@targets_app.command("reset")
def targets_reset(config_path: str = CONFIG_OPTION) -> None:
    """Restore the default targets."""
    try:
        param_loader = init_config(config_path)
        targets = _targets_store(param_loader).reset(param_loader.get_user_config().id)
        typer.echo(
            f"Targets reset: {targets.systolic}/{targets.diastolic} mmHg, pulse {targets.pulse}"
        )
    except BPTrackerError as e:
        raise _fail("Targets", e) from e


# ----------------------------------------------------------------------
# Import / export
# ----------------------------------------------------------------------


@app.command("import-csv")
def import_csv(
    file: Path = typer.Argument(..., help="CSV file to import", exists=True, dir_okay=False),
    config_path: str = CONFIG_OPTION,
) -> None:
    """Import readings from a CSV file. Invalid rows are skipped."""
    try:
        param_loader = init_config(config_path)
        parser = CSVParser(param_loader.get_csv_config(), param_loader.get_user_config().timezone)
        result = parser.parse(file)

        created = _reading_store(param_loader).create_many(result.readings)
        typer.echo(f"Imported {len(created)} readings from {file.name}")
        for row in result.skipped:
            typer.echo(f"  Skipped row {row.row}: {row.message}", err=True)

    except BPTrackerError as e:
        raise _fail("Import", e) from e


def _export(fmt: str, output: str | None, config_path: str) -> None:
    param_loader = init_config(config_path)
    readings = _reading_store(param_loader).list_readings()
    service = OutputService(param_loader.get_output_config(), param_loader.get_user_config().timezone)

    if fmt == "csv":
        path = service.write_csv(readings, output)
    elif fmt == "json":
        path = service.write_json(readings, output)
    else:
        path = service.write_ics(
            readings, output, param_loader.get_calendar_config().event_duration_minutes
        )
    typer.echo(f"Exported {len(readings)} readings to {path}")


@export_app.command("csv")
def export_csv(
    output: str | None = typer.Option(None, help="File name inside the output directory"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """Export readings as CSV."""
    try:
        _export("csv", output, config_path)
    except BPTrackerError as e:
        raise _fail("Export", e) from e


@export_app.command("json")
def export_json(
    output: str | None = typer.Option(None, help="File name inside the output directory"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """Export readings as JSON."""
    try:
        _export("json", output, config_path)
    except BPTrackerError as e:
        raise _fail("Export", e) from e


@export_app.command("ics")
def export_ics(
    output: str | None = typer.Option(None, help="File name inside the output directory"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """Export readings as an iCalendar file for manual import."""
    try:
        _export("ics", output, config_path)
        typer.echo("\nTo import into Google Calendar:")
        for step in import_instructions():
            typer.echo(f"  {step}")
    except BPTrackerError as e:
        raise _fail("Export", e) from e


@export_app.command("link")
def export_link(
    reading_id: str | None = typer.Argument(None, help="Reading id (default: latest)"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """Print a Google Calendar link that pre-fills an event for a reading."""
    try:
        param_loader = init_config(config_path)
        store = _reading_store(param_loader)
        readings = store.list_readings()
        if not readings:
            raise ValidationError("No readings to export")
        reading = store.get(reading_id) if reading_id else readings[0]
        typer.echo(
            google_calendar_link(
                reading,
                param_loader.get_user_config().timezone,
                param_loader.get_calendar_config().event_duration_minutes,
            )
        )
    except BPTrackerError as e:
        raise _fail("Export", e) from e


@app.command()
def daily(
    output_file: str | None = typer.Option(None, help="Output CSV (default: output dir)"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """Write per-day averages and counts to CSV."""
    try:
        param_loader = init_config(config_path)
        output_config = param_loader.get_output_config()
        target = (
            Path(output_file)
            if output_file
            else Path(output_config.dir) / output_config.files.daily_summary
        )

        readings = _reading_store(param_loader).list_readings()
        summary = DailySummaryService(param_loader.get_user_config().timezone).write(readings, target)

        typer.echo(f"Daily summary with {len(summary)} days written to {target}")

    except BPTrackerError as e:
        raise _fail("Daily summary", e) from e


# ----------------------------------------------------------------------
# Calendar
# ----------------------------------------------------------------------


@calendar_app.command("auth-url")
def calendar_auth_url(config_path: str = CONFIG_OPTION) -> None:
    """
    Print the Google consent URL.

    After approving access, Google redirects to the configured redirect URI
    with ``code`` and ``state`` query parameters; pass both to
    ``calendar connect``.
    """
    try:
        param_loader = init_config(config_path)
        service = _sync_service(param_loader, _reading_store(param_loader))
        request = service.begin_authorization()
        _sync_store(param_loader).save_pending_state(
            param_loader.get_user_config().id, request.state
        )
        typer.echo("Open this URL to authorize calendar access:")
        typer.echo(request.url)
    except BPTrackerError as e:
        raise _fail("Authorization", e) from e


@calendar_app.command("connect")
def calendar_connect(
    code: str = typer.Option(..., help="Authorization code from the redirect"),
    state: str | None = typer.Option(None, help="State parameter from the redirect"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """Exchange the authorization code and store the calendar grant."""
    try:
        param_loader = init_config(config_path)
        user_id = param_loader.get_user_config().id
        sync_store = _sync_store(param_loader)
        service = _sync_service(param_loader, _reading_store(param_loader))

        expected = sync_store.pop_pending_state(user_id)
        sync_config = service.complete_authorization(code, state, expected)
        sync_store.save(user_id, sync_config)
        typer.echo(f"Connected to Google Calendar ({sync_config.calendar_id})")
    except BPTrackerError as e:
        raise _fail("Connect", e) from e


@calendar_app.command("status")
def calendar_status(config_path: str = CONFIG_OPTION) -> None:
    """Show the calendar connection state."""
    try:
        param_loader = init_config(config_path)
        sync_config = _sync_store(param_loader).load(param_loader.get_user_config().id)
        readings = _reading_store(param_loader).list_readings()
        pending = sum(1 for r in readings if not r.synced_to_calendar)

        typer.echo(f"Connected: {'yes' if sync_config.is_connected else 'no'}")
        typer.echo(f"Calendar: {sync_config.calendar_id}")
        typer.echo(f"Auto-sync: {'on' if sync_config.auto_sync else 'off'}")
        last = sync_config.last_synced_at.isoformat() if sync_config.last_synced_at else "never"
        typer.echo(f"Last synced: {last}")
        typer.echo(f"Unsynced readings: {pending}")
    except BPTrackerError as e:
        raise _fail("Status", e) from e


def _run_batch(config_path: str, rebuild: bool) -> SyncResult:
    param_loader = init_config(config_path)
    user_id = param_loader.get_user_config().id
    sync_store = _sync_store(param_loader)
    store = _reading_store(param_loader)
    sync_config = sync_store.load(user_id)
    if not sync_config.is_connected:
        raise ValidationError("Google Calendar is not connected. Run 'calendar auth-url' first.")

    service = _sync_service(param_loader, store)
    readings = store.list_readings()
    length = len(readings) if rebuild else sum(1 for r in readings if not r.synced_to_calendar)

    with typer.progressbar(length=max(length, 1), label="Syncing") as progress:

        def on_progress(done: int, total: int) -> None:
            progress.update(1)

        if rebuild:
            result = service.rebuild_sync_tracking(readings, sync_config, on_progress)
        else:
            result = service.sync_readings(readings, sync_config, on_progress)

    sync_store.save(user_id, result.config)
    return result


@calendar_app.command("sync")
def calendar_sync(config_path: str = CONFIG_OPTION) -> None:
    """Push every unsynced reading to Google Calendar."""
    try:
        result = _run_batch(config_path, rebuild=False)
        _echo_sync_result(result, "Sync")
        if result.status is SyncStatus.FAILURE:
            raise typer.Exit(code=1)
    except BPTrackerError as e:
        raise _fail("Sync", e) from e


@calendar_app.command("rebuild")
def calendar_rebuild(config_path: str = CONFIG_OPTION) -> None:
    """Re-check every reading against the calendar and fix its sync flag."""
    try:
        result = _run_batch(config_path, rebuild=True)
        _echo_sync_result(result, "Rebuild")
        if result.status is SyncStatus.FAILURE:
            raise typer.Exit(code=1)
    except BPTrackerError as e:
        raise _fail("Rebuild", e) from e


@calendar_app.command("calendars")
def calendar_list(config_path: str = CONFIG_OPTION) -> None:
    """List the calendars available to the grant."""
    try:
        param_loader = init_config(config_path)
        user_id = param_loader.get_user_config().id
        sync_store = _sync_store(param_loader)
        sync_config = sync_store.load(user_id)

        calendars = _sync_service(param_loader, _reading_store(param_loader)).list_calendars(
            sync_config
        )
        sync_store.save(user_id, sync_config)

        for calendar in calendars:
            marker = "*" if calendar.id == sync_config.calendar_id else " "
            primary = " (primary)" if calendar.primary else ""
            typer.echo(f"{marker} {calendar.id}  {calendar.summary or ''}{primary}")
    except BPTrackerError as e:
        raise _fail("Calendars", e) from e


@calendar_app.command("use")
def calendar_use(
    calendar_id: str = typer.Argument(..., help="Calendar id to sync into"),
    auto_sync: bool | None = typer.Option(
        None, "--auto-sync/--no-auto-sync", help="Push new readings automatically"
    ),
    config_path: str = CONFIG_OPTION,
) -> None:
    """Choose the target calendar and the auto-sync setting."""
    try:
        param_loader = init_config(config_path)
        user_id = param_loader.get_user_config().id
        sync_store = _sync_store(param_loader)
        sync_config: CalendarSyncConfig = sync_store.load(user_id)

        sync_config.calendar_id = calendar_id
        if auto_sync is not None:
            sync_config.auto_sync = auto_sync
        sync_store.save(user_id, sync_config)
        typer.echo(
            f"Syncing into {calendar_id}, auto-sync {'on' if sync_config.auto_sync else 'off'}"
        )
    except BPTrackerError as e:
        raise _fail("Calendar settings", e) from e


@calendar_app.command("test")
def calendar_test(config_path: str = CONFIG_OPTION) -> None:
    """Check that the stored grant still works."""
    try:
        param_loader = init_config(config_path)
        user_id = param_loader.get_user_config().id
        sync_store = _sync_store(param_loader)
        sync_config = sync_store.load(user_id)

        ok = _sync_service(param_loader, _reading_store(param_loader)).test_connection(sync_config)
        sync_store.save(user_id, sync_config)
        if not ok:
            typer.echo("Calendar connection failed", err=True)
            raise typer.Exit(code=1)
        typer.echo("Calendar connection OK")
    except BPTrackerError as e:
        raise _fail("Connection test", e) from e


@calendar_app.command("disconnect")
def calendar_disconnect(config_path: str = CONFIG_OPTION) -> None:
    """Revoke the grant and forget the stored tokens."""
    try:
        param_loader = init_config(config_path)
        user_id = param_loader.get_user_config().id
        sync_store = _sync_store(param_loader)
        sync_config = sync_store.load(user_id)

        _sync_service(param_loader, _reading_store(param_loader)).disconnect(sync_config)
        sync_store.clear(user_id)
        typer.echo("Disconnected from Google Calendar")
    except BPTrackerError as e:
        raise _fail("Disconnect", e) from e


if __name__ == "__main__":
    app()
