"""
Derived metrics over a snapshot of records.

Everything here is a pure function of (records, today): nothing is cached
and nothing is written. primary_event_date() decides which date counts for
a record and every time-windowed aggregate goes through it.

Lead time convention: whole calendar days from start_date to the closing
date (end_date, or devolucao_date for DEVOLVIDO), end minus start, floored
at zero. 2024-01-01 -> 2024-01-10 is 9 days. The same function backs the
per-record elapsed days, mean, median and P75.
"""
import math
import os
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from integration_board.dates import days_between, format_week, parse_date_only, parse_datetime, week_start
from integration_board.models.enums import RecordStatus, TrendAlert
from integration_board.services.taxonomy import (
    OPEN_STATUSES,
    STATUS_CONFIG,
    STATUS_ORDER,
    TERMINAL_STATUSES,
    allowed_statuses,
    is_status_allowed,
)
from integration_board.services.validation import field_value, missing_fields

TREND_WINDOW_DAYS = int(os.getenv("TREND_WINDOW_DAYS", "7"))
FINALIZED_MIN_PER_WINDOW = int(os.getenv("FINALIZED_MIN_PER_WINDOW", "10"))
CANCELLED_MAX_PER_WINDOW = int(os.getenv("CANCELLED_MAX_PER_WINDOW", "5"))

THROUGHPUT_WEEKS = 12
MEETING_CONVERSION_DAYS = 7
OWNER_LEAD_TIME_DAYS = 30

LEAD_TIME_STATUSES = (RecordStatus.FINALIZADO, RecordStatus.CANCELADO, RecordStatus.DEVOLVIDO)


def _status(record: Any) -> RecordStatus:
    return RecordStatus(field_value(record, "status"))


def _date(record: Any, name: str) -> Optional[date]:
    return parse_date_only(field_value(record, name))


def primary_event_date(record: Any) -> Optional[date]:
    """The one date that represents a record in time-based reporting."""
    status = _status(record)
    if status in (RecordStatus.FINALIZADO, RecordStatus.CANCELADO):
        return _date(record, "end_date")
    if status == RecordStatus.DEVOLVIDO:
        return _date(record, "devolucao_date")
    if status == RecordStatus.REUNIAO:
        meeting = parse_datetime(field_value(record, "meeting_datetime"))
        return meeting.date() if meeting else None
    if status == RecordStatus.NOVO:
        return _date(record, "cadastro_date") or _date(record, "start_date")
    return _date(record, "start_date")


def closing_date(record: Any) -> Optional[date]:
    status = _status(record)
    if status in (RecordStatus.FINALIZADO, RecordStatus.CANCELADO):
        return _date(record, "end_date")
    if status == RecordStatus.DEVOLVIDO:
        return _date(record, "devolucao_date")
    return None


def lead_time_days(record: Any) -> Optional[int]:
    """Days from start to close for FINALIZADO, CANCELADO and DEVOLVIDO records."""
    if _status(record) not in TERMINAL_STATUSES:
        return None
    start, end = _date(record, "start_date"), closing_date(record)
    if start is None or end is None:
        return None
    return max(0, days_between(start, end))


def elapsed_days(record: Any, today: date) -> Optional[int]:
    """Running day count shown next to a record: open work counts up to today."""
    status = _status(record)
    if status == RecordStatus.ANDAMENTO:
        start = _date(record, "start_date")
        return max(0, days_between(start, today)) if start else None
    if status in (RecordStatus.FINALIZADO, RecordStatus.CANCELADO):
        return lead_time_days(record)
    return None


def mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def median(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return float(ordered[mid])


def percentile_nearest_rank(values: Sequence[float], pct: float) -> float:
    """Nearest-rank percentile: the ceil(pct/100 * n)-th smallest value, no interpolation."""
    if not values:
        return 0.0
    ordered = sorted(values)
    rank = max(1, math.ceil(pct / 100 * len(ordered)))
    return float(ordered[rank - 1])


@dataclass
class LeadTimeStats:
    status: RecordStatus
    label: str
    count: int
    mean: float
    median: float
    p75: float


def lead_time_stats(records: Iterable[Any]) -> List[LeadTimeStats]:
    samples: Dict[RecordStatus, List[int]] = {s: [] for s in LEAD_TIME_STATUSES}
    for record in records:
        days = lead_time_days(record)
        if days is not None:
            samples[_status(record)].append(days)

    return [
        LeadTimeStats(
            status=s,
            label=STATUS_CONFIG[s].label,
            count=len(samples[s]),
            mean=round(mean(samples[s]), 1),
            median=round(median(samples[s]), 1),
            p75=round(percentile_nearest_rank(samples[s], 75), 1),
        )
        for s in LEAD_TIME_STATUSES
    ]


@dataclass
class AgingBucket:
    label: str
    lower: int
    upper: Optional[int]  # exclusive, None = unbounded
    count: int = 0

    def contains(self, age: int) -> bool:
        return age >= self.lower and (self.upper is None or age < self.upper)


AGING_RANGES = ((0, 15), (15, 25), (25, 45), (45, None))


def aging_bucket_label(lower: int, upper: Optional[int]) -> str:
    return f"{lower}+" if upper is None else f"{lower}–{upper}"


def aging_buckets(records: Iterable[Any], today: date) -> List[AgingBucket]:
    """Open records (NOVO/REUNIAO/ANDAMENTO) by days since start_date."""
    buckets = [AgingBucket(aging_bucket_label(lo, hi), lo, hi) for lo, hi in AGING_RANGES]
    for record in records:
        if _status(record) not in OPEN_STATUSES:
            continue
        start = _date(record, "start_date")
        if start is None:
            continue
        age = max(0, days_between(start, today))
        for bucket in buckets:
            if bucket.contains(age):
                bucket.count += 1
                break
    return buckets


@dataclass
class WeeklyThroughput:
    week_start: date
    label: str
    counts: Dict[RecordStatus, int]


def weekly_throughput(records: Iterable[Any], today: date, weeks: int = THROUGHPUT_WEEKS) -> List[WeeklyThroughput]:
    """Terminal records per Monday-start week over the last `weeks` weeks, oldest first."""
    current = week_start(today)
    starts = [current - timedelta(weeks=i) for i in range(weeks - 1, -1, -1)]
    rows = {
        ws: WeeklyThroughput(ws, format_week(ws), {s: 0 for s in LEAD_TIME_STATUSES})
        for ws in starts
    }
    for record in records:
        status = _status(record)
        if status not in TERMINAL_STATUSES:
            continue
        event = primary_event_date(record)
        if event is None:
            continue
        row = rows.get(week_start(event))
        if row is not None:
            row.counts[status] += 1
    return [rows[ws] for ws in starts]


@dataclass
class TrendDelta:
    status: RecordStatus
    last_window: int
    previous_window: int

    @property
    def delta(self) -> int:
        return self.last_window - self.previous_window


def trend_delta(records: Iterable[Any], status: RecordStatus, today: date, window_days: int = TREND_WINDOW_DAYS) -> TrendDelta:
    """
    Records of a status whose primary event date falls in the last window_days
    (today excluded) against the window of the same length before it.
    """
    status = RecordStatus(status)
    last_start = today - timedelta(days=window_days)
    prev_start = today - timedelta(days=2 * window_days)
    last = previous = 0
    for record in records:
        if _status(record) != status:
            continue
        event = primary_event_date(record)
        if event is None:
            continue
        if last_start <= event < today:
            last += 1
        elif prev_start <= event < last_start:
            previous += 1
    return TrendDelta(status, last, previous)


def trend_alert(
    status: RecordStatus,
    last_window: int,
    finalized_min: int = FINALIZED_MIN_PER_WINDOW,
    cancelled_max: int = CANCELLED_MAX_PER_WINDOW
) -> TrendAlert:
    """Informational only: too few finalized or too many cancelled in the window."""
    if status == RecordStatus.FINALIZADO and last_window < finalized_min:
        return TrendAlert.BELOW_THRESHOLD
    if status == RecordStatus.CANCELADO and last_window > cancelled_max:
        return TrendAlert.ABOVE_THRESHOLD
    return TrendAlert.OK


@dataclass
class StatusShare:
    status: RecordStatus
    label: str
    color: str
    count: int
    pct: float
    last_window: int
    delta: int
    alert: TrendAlert


def status_distribution(
    records: Sequence[Any],
    today: date,
    statuses: Optional[Sequence[RecordStatus]] = None,
    window_days: int = TREND_WINDOW_DAYS
) -> List[StatusShare]:
    statuses = list(statuses) if statuses is not None else list(STATUS_ORDER)
    total = len(records) or 1
    shares = []
    for s in statuses:
        count = sum(1 for r in records if _status(r) == s)
        trend = trend_delta(records, s, today, window_days)
        shares.append(StatusShare(
            status=s,
            label=STATUS_CONFIG[s].label,
            color=STATUS_CONFIG[s].color,
            count=count,
            pct=round(count / total * 100, 1),
            last_window=trend.last_window,
            delta=trend.delta,
            alert=trend_alert(s, trend.last_window),
        ))
    return shares


def kpis(records: Sequence[Any]) -> Dict[str, int]:
    counts = {s.value: 0 for s in STATUS_ORDER}
    for record in records:
        counts[_status(record).value] += 1
    return {
        "total": len(records),
        "open": sum(counts[s.value] for s in OPEN_STATUSES),
        **counts,
    }


@dataclass
class OwnerLoad:
    owner: str
    in_progress: int = 0
    finalized_week: int = 0
    lead_time_avg: float = 0.0


def owner_ranking(records: Iterable[Any], today: date) -> List[OwnerLoad]:
    """Open load, this week's FINALIZADO and 30-day mean lead time per owner."""
    this_week = week_start(today)
    lead_window_start = today - timedelta(days=OWNER_LEAD_TIME_DAYS)
    by_owner: Dict[str, OwnerLoad] = {}
    lead_samples: Dict[str, List[int]] = {}

    for record in records:
        key = (field_value(record, "owner") or "").strip() or "—"
        load = by_owner.setdefault(key, OwnerLoad(owner=key))
        status = _status(record)

        if status in OPEN_STATUSES:
            load.in_progress += 1

        end = closing_date(record)
        if status == RecordStatus.FINALIZADO and end is not None and this_week <= end < today:
            load.finalized_week += 1

        days = lead_time_days(record)
        if days is not None and end is not None and end >= lead_window_start:
            lead_samples.setdefault(key, []).append(days)

    for key, load in by_owner.items():
        load.lead_time_avg = round(mean(lead_samples.get(key, [])), 1)

    return sorted(by_owner.values(), key=lambda o: o.in_progress, reverse=True)


@dataclass
class MeetingWeek:
    week_start: date
    label: str
    meetings: int = 0
    converted: int = 0

    @property
    def conversion_pct(self) -> int:
        return round(self.converted / self.meetings * 100) if self.meetings else 0


def meetings_weekly(
    records: Iterable[Any],
    weeks: int = THROUGHPUT_WEEKS,
    conversion_days: int = MEETING_CONVERSION_DAYS
) -> List[MeetingWeek]:
    """
    Meetings per week and how many converted within conversion_days.

    A meeting converted when the record has left REUNIAO; the move date is
    the closing date for terminal statuses and updated_at otherwise.
    """
    rows: Dict[date, MeetingWeek] = {}
    for record in records:
        meeting = parse_datetime(field_value(record, "meeting_datetime"))
        if meeting is None:
            continue
        ws = week_start(meeting.date())
        row = rows.setdefault(ws, MeetingWeek(ws, format_week(ws)))
        row.meetings += 1

        status = _status(record)
        if status == RecordStatus.REUNIAO:
            continue
        moved = closing_date(record)
        if moved is None:
            moved = parse_date_only(field_value(record, "updated_at"))
        if moved is not None and days_between(meeting.date(), moved) <= conversion_days:
            row.converted += 1

    return [rows[k] for k in sorted(rows)][-weeks:]


@dataclass
class DataQualityIssue:
    record_id: Any
    service_name: str
    status: RecordStatus
    problem: str
    fields: List[str] = field(default_factory=list)


def data_quality_issues(records: Iterable[Any], service_names: Dict[Any, str]) -> List[DataQualityIssue]:
    """
    Records that no longer satisfy the rules of their current status.

    A status the service may not use (legacy NOVO/REUNIAO outside RC-V) and
    required fields left blank are reported; nothing is corrected.
    """
    issues = []
    for record in records:
        service_name = service_names.get(field_value(record, "service_id"), "")
        status = _status(record)
        record_id = field_value(record, "id")
        if not is_status_allowed(status, service_name):
            issues.append(DataQualityIssue(record_id, service_name, status, "status_not_allowed"))
            continue
        missing = missing_fields(record, status, service_name)
        if missing:
            issues.append(DataQualityIssue(
                record_id, service_name, status, "missing_required_fields", [d.label for d in missing]
            ))
    return issues


def dashboard(records: Sequence[Any], today: date, service_name: Optional[str] = None) -> Dict[str, Any]:
    """Everything the reporting views need, recomputed from one snapshot."""
    statuses = allowed_statuses(service_name) if service_name else list(STATUS_ORDER)
    return {
        "kpis": kpis(records),
        "status_distribution": status_distribution(records, today, statuses),
        "lead_time": lead_time_stats(records),
        "aging": aging_buckets(records, today),
        "throughput_weekly": weekly_throughput(records, today),
        "owner_ranking": owner_ranking(records, today),
        "meetings_weekly": meetings_weekly(records),
    }
