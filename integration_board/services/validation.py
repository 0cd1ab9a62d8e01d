"""
Transition validator.

missing_fields() is the single gate every write goes through: it answers which
required fields are blank for a target status, or blocks the status outright
when the service may not use it. It has no side effects.
"""
from dataclasses import dataclass
from typing import Any, List, Mapping

from integration_board.models.enums import RecordStatus
from integration_board.services.taxonomy import RCV_ONLY_STATUSES, is_rcv, status_label


@dataclass(frozen=True)
class FieldDescriptor:
    """A required field, identified by record attribute and human label."""
    name: str
    label: str


AGIDESK_TICKET = FieldDescriptor("agidesk_ticket", "Chamado Agidesk")
CADASTRO_DATE = FieldDescriptor("cadastro_date", "Data de Cadastro")
MEETING_DATETIME = FieldDescriptor("meeting_datetime", "Data/Hora da Reunião")
INTEGRATION_TYPE = FieldDescriptor("integration_type", "Tipo de Integração")
END_DATE = FieldDescriptor("end_date", "Data de Fim")
DEVOLUCAO_DATE = FieldDescriptor("devolucao_date", "Data da Devolução")
COMMERCIAL = FieldDescriptor("commercial", "Comercial")

# Returned alone when the status itself is wrong for the service.
# Filling fields can never clear it.
STATUS_NOT_PERMITTED = FieldDescriptor(
    "status", "Novo Cliente e Reunião Operacional só podem ser usados no RC-V"
)

REQUIRED_FIELDS = {
    RecordStatus.NOVO: [AGIDESK_TICKET, CADASTRO_DATE],
    RecordStatus.REUNIAO: [MEETING_DATETIME],
    RecordStatus.ANDAMENTO: [],
    RecordStatus.FINALIZADO: [END_DATE],
    RecordStatus.CANCELADO: [END_DATE],
    RecordStatus.DEVOLVIDO: [DEVOLUCAO_DATE, COMMERCIAL],
}

# integration_type is only required in the RC-V service
RCV_INTEGRATION_STATUSES = frozenset({RecordStatus.ANDAMENTO, RecordStatus.FINALIZADO, RecordStatus.CANCELADO})


def field_value(record: Any, name: str) -> Any:
    """Read a field from an ORM row, a pydantic model or a plain mapping."""
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    return str(value).strip() == ""


def required_fields(target_status: RecordStatus, service_name: str) -> List[FieldDescriptor]:
    """Fields the target status requires in the given service, in form order."""
    target_status = RecordStatus(target_status)
    fields = []
    if target_status in RCV_INTEGRATION_STATUSES and is_rcv(service_name):
        fields.append(INTEGRATION_TYPE)
    fields.extend(REQUIRED_FIELDS[target_status])
    return fields


def missing_fields(record: Any, target_status: RecordStatus, service_name: str) -> List[FieldDescriptor]:
    """
    Determine what prevents a record from being saved in target_status.

    Returns [STATUS_NOT_PERMITTED] when the service may not use the status,
    otherwise the required fields that are blank (empty after trim).
    An empty list means the transition can go ahead.
    """
    target_status = RecordStatus(target_status)

    if target_status in RCV_ONLY_STATUSES and not is_rcv(service_name):
        return [STATUS_NOT_PERMITTED]

    return [
        descriptor
        for descriptor in required_fields(target_status, service_name)
        if is_blank(field_value(record, descriptor.name))
    ]


def is_status_block(violations: List[FieldDescriptor]) -> bool:
    return STATUS_NOT_PERMITTED in violations


def describe_violations(violations: List[FieldDescriptor], target_status: RecordStatus) -> str:
    """User-facing message naming exactly what is wrong."""
    if is_status_block(violations):
        return STATUS_NOT_PERMITTED.label + "."
    labels = ", ".join(v.label for v in violations)
    return f"Para {status_label(target_status)}: informe {labels}."
