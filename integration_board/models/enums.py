"""Enums for the integration board - the fixed vocabulary of statuses, audit actions and roles."""
from enum import Enum


class RecordStatus(str, Enum):
    """The six lifecycle stages of a client integration record. No other statuses are allowed."""
    NOVO = "NOVO"
    REUNIAO = "REUNIAO"
    ANDAMENTO = "ANDAMENTO"
    FINALIZADO = "FINALIZADO"
    CANCELADO = "CANCELADO"
    DEVOLVIDO = "DEVOLVIDO"


class AuditAction(str, Enum):
    """Kinds of mutation recorded in the audit trail."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    STATUS_CHANGE = "STATUS_CHANGE"


class UserRole(str, Enum):
    """Roles issued through the user_roles lookup."""
    ADMIN = "admin"
    VIEWER = "viewer"


class TrendAlert(str, Enum):
    """Informational flag attached to a status trend."""
    OK = "ok"
    BELOW_THRESHOLD = "ruim"
    ABOVE_THRESHOLD = "alerta"
