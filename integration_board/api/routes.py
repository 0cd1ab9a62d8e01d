"""API routes for services, records, audit trail and reporting."""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from integration_board.auth import AuthContext, get_auth_context
from integration_board.database import SessionLocal, get_db
from integration_board.dates import today_local
from integration_board.models.audit import RecordAuditLog
from integration_board.models.domain import Service, ServiceRecord
from integration_board.models.enums import AuditAction, RecordStatus
from integration_board.services.audit_logger import AuditLogger
from integration_board.services.export import audit_to_csv, records_to_csv
from integration_board.services.lifecycle import RecordLifecycleManager
from integration_board.services.metrics import dashboard, data_quality_issues, elapsed_days, primary_event_date
from integration_board.services.taxonomy import STATUS_CONFIG, allowed_statuses
from integration_board.api.schemas import (
    AuditLogResponse,
    AuditRow,
    DashboardResponse,
    DataQualityIssueResponse,
    FieldDescriptorResponse,
    MoveRequest,
    MoveResponse,
    RecordCreate,
    RecordListItem,
    RecordResponse,
    RecordUpdate,
    RefusalResponse,
    ServiceResponse,
    ServiceUpdate,
    StatusOption,
)

router = APIRouter()

AUDIT_LIMIT = 500

audit_logger = AuditLogger(SessionLocal)


def get_audit_logger() -> AuditLogger:
    return audit_logger


def get_manager(
    db: Session = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
    actor: AuthContext = Depends(get_auth_context),
) -> RecordLifecycleManager:
    return RecordLifecycleManager(db, audit, actor)


def _filter_records(
    db: Session,
    service_id: Optional[str] = None,
    search: Optional[str] = None,
    status_filter: Optional[RecordStatus] = None,
    owner: Optional[str] = None
) -> List[ServiceRecord]:
    query = db.query(ServiceRecord)
    if service_id:
        query = query.filter(ServiceRecord.service_id == service_id)
    if status_filter:
        query = query.filter(ServiceRecord.status == status_filter)
    records = query.order_by(ServiceRecord.created_at.desc()).all()

    # Client search and owner match are case/space tolerant, done in Python
    if search:
        needle = search.strip().lower()
        records = [r for r in records if needle in r.client_name.lower()]
    if owner:
        wanted = owner.strip()
        records = [r for r in records if (r.owner or "—").strip() == wanted]
    return records


def _list_item(record: ServiceRecord, service_name: Optional[str] = None) -> RecordListItem:
    item = RecordListItem.model_validate(record, from_attributes=True)
    item.service_name = service_name
    item.elapsed_days = elapsed_days(record, today_local())
    item.primary_date = primary_event_date(record)
    return item


# Status taxonomy
@router.get("/statuses", response_model=List[StatusOption])
def list_statuses(service: str = Query(..., description="Service name")):
    """Statuses selectable in a service, in display order."""
    return [STATUS_CONFIG[s] for s in allowed_statuses(service)]


# Service endpoints
@router.get("/services", response_model=List[ServiceResponse])
def list_services(db: Session = Depends(get_db), actor: AuthContext = Depends(get_auth_context)):
    return db.query(Service).order_by(Service.name).all()


@router.get("/services/{name}", response_model=ServiceResponse)
def get_service(name: str, manager: RecordLifecycleManager = Depends(get_manager)):
    """Get a service by name. Admins create it on first access."""
    return manager.get_or_create_service(name)


@router.patch("/services/{name}", response_model=ServiceResponse)
def update_service(name: str, data: ServiceUpdate, manager: RecordLifecycleManager = Depends(get_manager)):
    return manager.update_service_description(name, data.description)


# Record endpoints
@router.get("/services/{name}/records", response_model=List[RecordListItem])
def list_service_records(
    name: str,
    search: Optional[str] = None,
    status_filter: Optional[RecordStatus] = Query(None, alias="status"),
    owner: Optional[str] = None,
    db: Session = Depends(get_db),
    manager: RecordLifecycleManager = Depends(get_manager),
):
    """List a service's records, newest first."""
    service = manager.get_service_by_name(name)
    records = _filter_records(db, service.id, search, status_filter, owner)
    return [_list_item(r, service.name) for r in records]


@router.post(
    "/services/{name}/records",
    response_model=RecordResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": RefusalResponse, "description": "Required fields missing or status not permitted"}},
)
def create_record(name: str, data: RecordCreate, manager: RecordLifecycleManager = Depends(get_manager)):
    service = manager.get_service_by_name(name)
    return manager.create(service.id, data)


@router.get("/records", response_model=List[RecordListItem])
def list_all_records(
    service: Optional[str] = None,
    search: Optional[str] = None,
    status_filter: Optional[RecordStatus] = Query(None, alias="status"),
    owner: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: AuthContext = Depends(get_auth_context),
):
    """Records across every service, enriched with the service name."""
    names = {s.id: s.name for s in db.query(Service).all()}
    service_id = None
    if service:
        service_id = next((sid for sid, n in names.items() if n == service), None)
        if service_id is None:
            return []
    records = _filter_records(db, service_id, search, status_filter, owner)
    return [_list_item(r, names.get(r.service_id, "—")) for r in records]


@router.get("/records/{record_id}", response_model=RecordResponse)
def get_record(record_id: str, manager: RecordLifecycleManager = Depends(get_manager)):
    return manager.get_record(record_id)


@router.patch(
    "/records/{record_id}",
    response_model=RecordResponse,
    responses={422: {"model": RefusalResponse, "description": "Required fields missing or status not permitted"}},
)
def update_record(record_id: str, data: RecordUpdate, manager: RecordLifecycleManager = Depends(get_manager)):
    return manager.update(record_id, data)


@router.delete("/records/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_record(record_id: str, manager: RecordLifecycleManager = Depends(get_manager)):
    manager.delete(record_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/records/{record_id}/move",
    response_model=MoveResponse,
    responses={422: {"model": RefusalResponse, "description": "Status not permitted for this service"}},
)
def move_record(record_id: str, data: MoveRequest, manager: RecordLifecycleManager = Depends(get_manager)):
    """
    Quick status change.

    When the target status needs data the record lacks, nothing is written:
    the response carries the missing fields and a pre-filled draft.
    """
    result = manager.move(record_id, data.status)
    return MoveResponse(
        applied=result.applied,
        record=RecordResponse.model_validate(result.record, from_attributes=True),
        missing_fields=[FieldDescriptorResponse.model_validate(m, from_attributes=True) for m in result.missing],
        draft=result.draft,
    )


@router.get("/records/{record_id}/audit", response_model=List[AuditLogResponse])
def record_history(record_id: str, db: Session = Depends(get_db), actor: AuthContext = Depends(get_auth_context)):
    """Audit entries of one record, newest first. Works for deleted records too."""
    return db.query(RecordAuditLog).filter(
        RecordAuditLog.record_id == record_id
    ).order_by(RecordAuditLog.created_at.desc()).all()


# Audit endpoints
def _audit_rows(
    db: Session,
    service: Optional[str],
    action: Optional[AuditAction],
    record_status: Optional[RecordStatus],
    client: Optional[str]
) -> List[AuditRow]:
    logs = db.query(RecordAuditLog).order_by(RecordAuditLog.created_at.desc()).limit(AUDIT_LIMIT).all()

    record_ids = {log.record_id for log in logs}
    records = {}
    if record_ids:
        records = {r.id: r for r in db.query(ServiceRecord).filter(ServiceRecord.id.in_(record_ids)).all()}
    service_names = {s.id: s.name for s in db.query(Service).all()}

    rows = []
    for log in logs:
        record = records.get(log.record_id)
        row = AuditRow.model_validate(log, from_attributes=True)
        if record is not None:
            row.client_name = record.client_name
            row.record_status = record.status
            row.service_name = service_names.get(record.service_id)

        if service and row.service_name != service:
            continue
        if action and row.action != action:
            continue
        if record_status and row.record_status != record_status:
            continue
        if client and client.strip().lower() not in (row.client_name or "").lower():
            continue
        rows.append(row)
    return rows


@router.get("/audit", response_model=List[AuditRow])
def list_audit(
    service: Optional[str] = None,
    action: Optional[AuditAction] = None,
    record_status: Optional[RecordStatus] = Query(None, alias="status"),
    client: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: AuthContext = Depends(get_auth_context),
):
    """Most recent audit entries (up to 500), optionally filtered."""
    return _audit_rows(db, service, action, record_status, client)


# Export endpoints
@router.get("/services/{name}/records/export.csv")
def export_service_records(
    name: str,
    search: Optional[str] = None,
    status_filter: Optional[RecordStatus] = Query(None, alias="status"),
    owner: Optional[str] = None,
    db: Session = Depends(get_db),
    manager: RecordLifecycleManager = Depends(get_manager),
):
    service = manager.get_service_by_name(name)
    records = _filter_records(db, service.id, search, status_filter, owner)
    return Response(
        content=records_to_csv(records),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{name}-export.csv"'},
    )


@router.get("/audit/export.csv")
def export_audit(
    service: Optional[str] = None,
    action: Optional[AuditAction] = None,
    record_status: Optional[RecordStatus] = Query(None, alias="status"),
    client: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: AuthContext = Depends(get_auth_context),
):
    rows: List[Dict[str, Any]] = [
        {
            "created_at": r.created_at,
            "service": r.service_name,
            "client_name": r.client_name,
            "action": r.action,
            "field": r.field_name,
            "old": r.old_value,
            "new": r.new_value,
            "user_id": r.user_id,
        }
        for r in _audit_rows(db, service, action, record_status, client)
    ]
    return Response(
        content=audit_to_csv(rows),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="auditoria.csv"'},
    )


# Reporting endpoints
@router.get("/metrics", response_model=DashboardResponse)
def get_metrics(
    service: Optional[str] = None,
    status_filter: Optional[RecordStatus] = Query(None, alias="status"),
    owner: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: AuthContext = Depends(get_auth_context),
):
    """Derived metrics for one service, or for all services when none is given."""
    service_id = None
    if service:
        found = db.query(Service).filter(Service.name == service).first()
        if found is None:
            raise HTTPException(status_code=404, detail="Service not found")
        service_id = found.id
    records = _filter_records(db, service_id, None, status_filter, owner)
    return DashboardResponse.model_validate(dashboard(records, today_local(), service), from_attributes=True)


@router.get("/data-quality", response_model=List[DataQualityIssueResponse])
def get_data_quality(db: Session = Depends(get_db), actor: AuthContext = Depends(get_auth_context)):
    """Records whose stored state breaks the rules of their current status."""
    names = {s.id: s.name for s in db.query(Service).all()}
    records = db.query(ServiceRecord).all()
    return [
        DataQualityIssueResponse.model_validate(issue, from_attributes=True)
        for issue in data_quality_issues(records, names)
    ]
