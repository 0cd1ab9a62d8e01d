"""
Status taxonomy: the ordered statuses, their display metadata, and which of
them each service may use.

Every place that needs to know whether a status is selectable for a service
asks allowed_statuses() - the validator, the lifecycle manager and the API.
"""
from dataclasses import dataclass
from typing import Dict, List

from integration_board.models.enums import RecordStatus

RCV_SERVICE_NAME = "RC-V"


@dataclass(frozen=True)
class StatusInfo:
    """Display metadata for a status. Rendering only, never used for logic."""
    status: RecordStatus
    label: str
    column_label: str
    tag: str
    color: str


STATUS_ORDER: List[RecordStatus] = [
    RecordStatus.NOVO,
    RecordStatus.REUNIAO,
    RecordStatus.ANDAMENTO,
    RecordStatus.FINALIZADO,
    RecordStatus.CANCELADO,
    RecordStatus.DEVOLVIDO,
]

STATUS_CONFIG: Dict[RecordStatus, StatusInfo] = {
    RecordStatus.NOVO: StatusInfo(RecordStatus.NOVO, "Novo Cliente", "Novos Clientes", "status-novo", "#94a3b8"),
    RecordStatus.REUNIAO: StatusInfo(RecordStatus.REUNIAO, "Reunião Operacional", "Reuniões", "status-reuniao", "#a78bfa"),
    RecordStatus.ANDAMENTO: StatusInfo(RecordStatus.ANDAMENTO, "Em Andamento", "Em Andamento", "status-andamento", "#3b82f6"),
    RecordStatus.FINALIZADO: StatusInfo(RecordStatus.FINALIZADO, "Finalizado", "Finalizados", "status-finalizado", "#22c55e"),
    RecordStatus.CANCELADO: StatusInfo(RecordStatus.CANCELADO, "Cancelado", "Cancelados", "status-cancelado", "#ef4444"),
    RecordStatus.DEVOLVIDO: StatusInfo(RecordStatus.DEVOLVIDO, "Devolvido", "Devolvidos", "status-devolvido", "#f97316"),
}

# Statuses only the RC-V service may use
RCV_ONLY_STATUSES = frozenset({RecordStatus.NOVO, RecordStatus.REUNIAO})

OPEN_STATUSES = frozenset({RecordStatus.NOVO, RecordStatus.REUNIAO, RecordStatus.ANDAMENTO})
TERMINAL_STATUSES = frozenset({RecordStatus.FINALIZADO, RecordStatus.CANCELADO, RecordStatus.DEVOLVIDO})


def is_rcv(service_name: str) -> bool:
    return service_name == RCV_SERVICE_NAME


def allowed_statuses(service_name: str) -> List[RecordStatus]:
    """Selectable statuses for a service, in display order."""
    if is_rcv(service_name):
        return list(STATUS_ORDER)
    return [s for s in STATUS_ORDER if s not in RCV_ONLY_STATUSES]


def is_status_allowed(status: RecordStatus, service_name: str) -> bool:
    return RecordStatus(status) in allowed_statuses(service_name)


def default_status(service_name: str) -> RecordStatus:
    """Status a brand new record starts in when the form does not say otherwise."""
    return allowed_statuses(service_name)[0]


def status_label(status: RecordStatus) -> str:
    return STATUS_CONFIG[RecordStatus(status)].label
