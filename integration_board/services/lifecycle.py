"""
Record lifecycle manager - the only component that mutates records.

Every create, update, delete and status move goes through here: the write is
validated, the field payload normalized, the change persisted and the audit
trail fed. Statuses are not ordered; any status can be reached from any other
as long as the service allows it and its required fields are filled.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import ValidationError as SchemaError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from integration_board.auth import AuthContext
from integration_board.dates import (
    normalize_date_only,
    parse_datetime,
    to_date_string,
    to_datetime_local_string,
    today_local,
)
from integration_board.models.domain import Service, ServiceRecord
from integration_board.models.enums import AuditAction, RecordStatus
from integration_board.models.records import RECORD_FIELDS, RecordDraft, to_variant
from integration_board.services.audit_logger import AuditEvent, AuditLogger
from integration_board.services.taxonomy import default_status, is_status_allowed
from integration_board.services.validation import (
    REQUIRED_FIELDS,
    STATUS_NOT_PERMITTED,
    INTEGRATION_TYPE,
    FieldDescriptor,
    describe_violations,
    is_status_block,
    missing_fields,
)

logger = logging.getLogger(__name__)

CLIENT_NAME = FieldDescriptor("client_name", "Cliente")
START_DATE = FieldDescriptor("start_date", "Data de Início")

# Field changes worth their own audit entry
AUDITED_FIELDS = ("owner", "integration_type", "agidesk_ticket", "end_date", "devolucao_date", "commercial")

DATE_FIELDS = ("cadastro_date", "start_date", "end_date", "devolucao_date")
TEXT_FIELDS = ("owner", "notes", "agidesk_ticket", "integration_type", "commercial")

DUPLICATE_CLIENT_MESSAGE = "Já existe um registro para este cliente neste serviço."
STORE_UNAVAILABLE_MESSAGE = "Não foi possível salvar. Tente novamente."
STORE_REJECTED_MESSAGE = "Não foi possível salvar: os dados foram recusados pelo banco."

# How the client-per-service index shows up in driver messages (Postgres, SQLite)
DUPLICATE_CLIENT_MARKERS = ("uq_records_service_client", "UNIQUE constraint failed: records.")


class RefusalError(Exception):
    """
    Raised when an action is refused by the system.
    This is NOT an error - it's the system working correctly.
    """
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationError(RefusalError):
    """A write blocked before reaching the store: fields missing or status not permitted."""
    def __init__(self, violations: List[FieldDescriptor], target_status: Optional[RecordStatus] = None, message: str = None):
        self.violations = list(violations)
        self.target_status = target_status
        self.status_blocked = is_status_block(self.violations)
        super().__init__(message or describe_violations(self.violations, target_status))


class PermissionDenied(RefusalError):
    """The actor may read but not write."""


class RecordNotFound(LookupError):
    pass


class ServiceNotFound(LookupError):
    pass


class PersistenceError(Exception):
    """The store rejected a write. Nothing is assumed to have changed."""
    def __init__(self, message: str, duplicate: bool = False):
        self.message = message
        self.duplicate = duplicate
        super().__init__(self.message)


@dataclass
class MoveResult:
    """
    Outcome of a quick status move.

    When applied is False and missing is non-empty, draft holds the record
    pre-seeded with the target status so the caller can open an edit form and
    finish the transition through update().
    """
    record: ServiceRecord
    applied: bool
    missing: List[FieldDescriptor] = field(default_factory=list)
    draft: Optional[RecordDraft] = None


def _trimmed(value) -> str:
    if value is None:
        return ""
    if isinstance(value, RecordStatus):
        return value.value
    return str(value).strip()


class RecordLifecycleManager:
    """Validates, normalizes, persists and audits record mutations."""

    def __init__(self, db: Session, audit: AuditLogger, actor: AuthContext):
        self.db = db
        self.audit = audit
        self.actor = actor

    # Lookups

    def get_service(self, service_id: str) -> Service:
        service = self.db.get(Service, service_id)
        if service is None:
            raise ServiceNotFound(f"Service {service_id} not found")
        return service

    def get_service_by_name(self, name: str) -> Service:
        service = self.db.query(Service).filter(Service.name == name).first()
        if service is None:
            raise ServiceNotFound(f"Service {name} not found")
        return service

    def get_or_create_service(self, name: str, description: Optional[str] = None) -> Service:
        """Services are created on first access by name, by an admin only."""
        name = name.strip()
        service = self.db.query(Service).filter(Service.name == name).first()
        if service is not None:
            return service
        if not self.actor.is_admin:
            raise ServiceNotFound(f"Service {name} not found")
        service = Service(name=name, description=description)
        self.db.add(service)
        self._commit()
        self.db.refresh(service)
        logger.info("Created service %s", name)
        return service

    def update_service_description(self, name: str, description: Optional[str]) -> Service:
        """Only the description of a service is editable."""
        self._require_admin()
        service = self.get_service_by_name(name)
        service.description = (description or "").strip() or None
        self._commit()
        self.db.refresh(service)
        return service

    def get_record(self, record_id: str) -> ServiceRecord:
        record = self.db.get(ServiceRecord, record_id)
        if record is None:
            raise RecordNotFound(f"Record {record_id} not found")
        return record

    # Mutations

    def create(self, service_id: str, payload: RecordDraft) -> ServiceRecord:
        """
        Create a record.

        Refused with ValidationError, before touching the store, when the
        client name is blank or the status cannot be satisfied.
        """
        self._require_admin()
        service = self.get_service(service_id)

        draft = payload.model_copy()
        if draft.status is None:
            draft.status = default_status(service.name)
        draft = self._normalize(draft, previous=None)
        variant = self._validate(draft, service.name)

        record = ServiceRecord(service_id=service.id, **variant.model_dump())
        self.db.add(record)
        self._commit()
        self.db.refresh(record)

        if not record.id:
            logger.warning("Store returned no id for new record of %s, CREATE not audited", service.name)
            return record

        self.audit.record(AuditEvent(
            record_id=record.id,
            action=AuditAction.CREATE,
            user_id=self.actor.user_id,
            new_value=record.status,
        ))
        return record

    def update(self, record_id: str, patch: RecordDraft) -> ServiceRecord:
        """
        Apply a patch and re-validate against the resulting status.

        Audits one generic UPDATE, a STATUS_CHANGE when the status moved, and
        one UPDATE per audited field whose trimmed value changed.
        """
        self._require_admin()
        record = self.get_record(record_id)
        service_name = record.service.name

        before = {name: getattr(record, name) for name in RECORD_FIELDS}
        draft = RecordDraft.from_record(record).merged(patch)
        if draft.status is None:
            draft.status = record.status
        draft = self._normalize(draft, previous=record)
        variant = self._validate(draft, service_name)

        for name, value in variant.model_dump().items():
            setattr(record, name, value)
        self._commit()
        self.db.refresh(record)

        self._audit_update(record, before)
        return record

    def delete(self, record_id: str) -> None:
        """
        Delete a record. Always permitted to an admin, whatever its status.

        The DELETE entry is written before the delete is issued so the
        snapshot survives even if the store cascades on the record.
        """
        self._require_admin()
        record = self.get_record(record_id)

        self.audit.record_now(AuditEvent(
            record_id=record.id,
            action=AuditAction.DELETE,
            user_id=self.actor.user_id,
            old_value=f"{record.client_name} ({_trimmed(record.status)})",
        ))

        self.db.delete(record)
        self._commit()
        logger.info("Deleted record %s", record_id)

    def move(self, record_id: str, new_status: RecordStatus) -> MoveResult:
        """
        Quick status change (drag-and-drop or status select).

        Raises ValidationError when the service may not use the status.
        When required fields are missing nothing is written; the result
        carries a draft to complete the transition with update().
        """
        self._require_admin()
        record = self.get_record(record_id)
        new_status = RecordStatus(new_status)
        service_name = record.service.name

        if record.status == new_status:
            return MoveResult(record=record, applied=False)

        if not is_status_allowed(new_status, service_name):
            raise ValidationError([STATUS_NOT_PERMITTED], new_status)

        missing = missing_fields(record, new_status, service_name)
        if missing:
            return MoveResult(
                record=record,
                applied=False,
                missing=missing,
                draft=self.seed_draft(record, new_status),
            )

        old_status = record.status
        record.status = new_status
        self._commit()
        self.db.refresh(record)

        self.audit.record(AuditEvent(
            record_id=record.id,
            action=AuditAction.STATUS_CHANGE,
            user_id=self.actor.user_id,
            field_name="status",
            old_value=old_status,
            new_value=new_status,
        ))
        return MoveResult(record=record, applied=True)

    @staticmethod
    def seed_draft(record: ServiceRecord, new_status: RecordStatus) -> RecordDraft:
        """Edit-form state for finishing a move: target status plus today's date where a closing date is blank."""
        draft = RecordDraft.from_record(record)
        draft.status = new_status
        today = to_date_string(today_local())
        if new_status in (RecordStatus.FINALIZADO, RecordStatus.CANCELADO) and not _trimmed(draft.end_date):
            draft.end_date = today
        if new_status == RecordStatus.DEVOLVIDO and not _trimmed(draft.devolucao_date):
            draft.devolucao_date = today
        return draft

    # Internals

    def _require_admin(self) -> None:
        if not self.actor.is_admin:
            raise PermissionDenied("Apenas administradores podem alterar registros.")

    def _normalize(self, draft: RecordDraft, previous: Optional[ServiceRecord]) -> RecordDraft:
        """
        Trim text, canonicalize dates and derive start_date.

        start_date follows the status-specific date for NOVO (cadastro_date)
        and REUNIAO (meeting day) whenever that date is new or changed. It
        falls back to the devolution date, then today, so it is never empty.
        """
        data = draft.model_dump()
        status = RecordStatus(data["status"])

        data["client_name"] = _trimmed(data["client_name"])
        data["owner"] = _trimmed(data["owner"])
        for name in TEXT_FIELDS:
            if name != "owner":
                data[name] = _trimmed(data[name]) or None
        for name in DATE_FIELDS:
            data[name] = normalize_date_only(data[name]) or None

        meeting = parse_datetime(data["meeting_datetime"])
        if meeting is not None:
            data["meeting_datetime"] = to_datetime_local_string(meeting)
        else:
            data["meeting_datetime"] = _trimmed(data["meeting_datetime"]) or None

        anchor, source = None, None
        if status == RecordStatus.NOVO:
            anchor, source = data["cadastro_date"], "cadastro_date"
        elif status == RecordStatus.REUNIAO and meeting is not None:
            anchor, source = to_date_string(meeting.date()), "meeting_datetime"

        if anchor:
            changed = (
                previous is None
                or previous.status != status
                or _trimmed(getattr(previous, source)) != _trimmed(data[source])
            )
            if changed:
                data["start_date"] = anchor

        if not data["start_date"]:
            data["start_date"] = data["devolucao_date"] or to_date_string(today_local())

        return RecordDraft(**data)

    def _validate(self, draft: RecordDraft, service_name: str):
        """Run the validator, then build the status variant."""
        if not draft.client_name:
            raise ValidationError([CLIENT_NAME], draft.status, message="Informe o cliente.")

        violations = missing_fields(draft, draft.status, service_name)
        if violations:
            raise ValidationError(violations, draft.status)

        try:
            return to_variant(draft)
        except SchemaError as e:
            bad = [_descriptor_for(err["loc"][-1]) for err in e.errors() if err.get("loc")]
            raise ValidationError(bad or [CLIENT_NAME], draft.status, message="Valores inválidos: " + ", ".join(d.label for d in bad))

    def _commit(self) -> None:
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("Store rejected write: %s", e.orig)
            if is_duplicate_client(e):
                raise PersistenceError(DUPLICATE_CLIENT_MESSAGE, duplicate=True) from e
            raise PersistenceError(STORE_REJECTED_MESSAGE) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Store write failed", exc_info=True)
            raise PersistenceError(STORE_UNAVAILABLE_MESSAGE) from e

    def _audit_update(self, record: ServiceRecord, before: dict) -> None:
        user_id = self.actor.user_id
        old_status, new_status = before["status"], record.status

        self.audit.record(AuditEvent(
            record_id=record.id,
            action=AuditAction.UPDATE,
            user_id=user_id,
            old_value=old_status,
            new_value=new_status,
        ))

        if old_status != new_status:
            self.audit.record(AuditEvent(
                record_id=record.id,
                action=AuditAction.STATUS_CHANGE,
                user_id=user_id,
                field_name="status",
                old_value=old_status,
                new_value=new_status,
            ))

        for name in AUDITED_FIELDS:
            old, new = _trimmed(before[name]), _trimmed(getattr(record, name))
            if old != new:
                self.audit.record(AuditEvent(
                    record_id=record.id,
                    action=AuditAction.UPDATE,
                    user_id=user_id,
                    field_name=name,
                    old_value=old or None,
                    new_value=new or None,
                ))


_DESCRIPTORS = {d.name: d for fields in REQUIRED_FIELDS.values() for d in fields}
_DESCRIPTORS.update({d.name: d for d in (CLIENT_NAME, START_DATE, INTEGRATION_TYPE)})


def _descriptor_for(name) -> FieldDescriptor:
    return _DESCRIPTORS.get(str(name), FieldDescriptor(str(name), str(name)))


def is_duplicate_client(error: IntegrityError) -> bool:
    """True when the store refused a second live record for the same client and service."""
    message = str(error.orig)
    return any(marker in message for marker in DUPLICATE_CLIENT_MARKERS)
