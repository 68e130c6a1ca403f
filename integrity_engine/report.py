"""
Report Builder - Final attempt summary and export helpers.
"""

import csv
import io
import json
from typing import Iterable

from .exceptions import SessionStateError
from .models import ConfirmedSignal, Report, SessionPhase, SessionSnapshot


CSV_COLUMNS = ['event_id', 'timestamp', 'offset_seconds', 'type', 'kind', 'label', 'score']


def format_duration(seconds: int) -> str:
    """
    Format a duration as minutes and seconds.

    Args:
        seconds: Whole seconds (negative values are treated as 0)

    Returns:
        Text such as ``"1m 30s"``
    """
    seconds = max(0, int(seconds))
    return f"{seconds // 60}m {seconds % 60}s"


def format_elapsed(seconds: float) -> str:
    """Format elapsed time as ``MM:SS`` for a live timer."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def build_report(snapshot: SessionSnapshot) -> Report:
    """
    Build the final report of an ended attempt.

    The report depends only on the snapshot, so building it again yields an
    equal report.

    Args:
        snapshot: State captured when the session entered the ended phase

    Returns:
        Immutable report

    Raises:
        SessionStateError: If the snapshot is not of an ended session
    """
    if snapshot.phase is not SessionPhase.ENDED:
        raise SessionStateError(
            f"Report requested while session is {snapshot.phase.value}"
        )

    return Report(
        candidate_id=snapshot.candidate_id,
        duration_seconds=snapshot.elapsed_seconds,
        duration=format_duration(snapshot.elapsed_seconds),
        focus_lost_count=snapshot.focus_lost_count,
        suspicious_item_count=snapshot.suspicious_item_count,
        drowsiness_count=snapshot.drowsiness_count,
        final_score=snapshot.integrity_score,
        events=tuple(snapshot.events),
        started_at=snapshot.started_at,
        ended_at=snapshot.ended_at,
        end_reason=snapshot.end_reason,
    )


def report_to_json(report: Report, indent: int = 2) -> str:
    """Serialize a report to a JSON document."""
    return json.dumps(report.to_dict(), indent=indent)


def events_to_csv(events: Iterable[ConfirmedSignal]) -> str:
    """
    Export events as CSV, one row per event in the given order.

    The object confidence from ``extra['score']`` gets its own column.
    """
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, lineterminator='\n')
    writer.writeheader()
    for event in events:
        row = event.to_dict()
        writer.writerow({
            'event_id': row['event_id'],
            'timestamp': row['timestamp'],
            'offset_seconds': row['offset_seconds'],
            'type': row['type'],
            'kind': row['kind'],
            'label': row['label'] or '',
            'score': row['extra'].get('score', ''),
        })
    return buffer.getvalue()
