"""CSV export of records and audit entries."""
import csv
import io
from enum import Enum
from typing import Any, Dict, Iterable, List

from integration_board.services.validation import field_value

RECORD_COLUMNS = [
    "id",
    "client_name",
    "status",
    "owner",
    "start_date",
    "end_date",
    "cadastro_date",
    "meeting_datetime",
    "devolucao_date",
    "integration_type",
    "agidesk_ticket",
    "commercial",
    "notes",
    "created_at",
    "updated_at",
]

AUDIT_COLUMNS = ["created_at", "service", "client_name", "action", "field", "old", "new", "user_id"]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _to_csv(columns: List[str], rows: Iterable[List[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow([_cell(v) for v in row])
    return buffer.getvalue()


def records_to_csv(records: Iterable[Any]) -> str:
    return _to_csv(RECORD_COLUMNS, ([field_value(r, c) for c in RECORD_COLUMNS] for r in records))


def audit_to_csv(rows: Iterable[Dict[str, Any]]) -> str:
    """rows are audit entries already joined with their record and service names."""
    return _to_csv(AUDIT_COLUMNS, ([r.get(c) if r.get(c) is not None else "—" for c in AUDIT_COLUMNS] for r in rows))
