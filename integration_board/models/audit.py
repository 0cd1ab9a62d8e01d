"""
Record audit log model.

Append-only trail of every mutation made to a client record. The application
only ever inserts rows here; it never updates or deletes them.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, Enum as SQLEnum, Text

from integration_board.database import Base
from integration_board.models.enums import AuditAction


class RecordAuditLog(Base):
    """
    Immutable audit entry for one mutation of a record.

    Invariants:
    - Once written, never edited or deleted
    - record_id is a weak reference: no foreign key, so entries outlive the record
    - old_value/new_value are stored already stringified
    """
    __tablename__ = "record_audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    record_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String, nullable=True)  # Nullable for system events
    action = Column(SQLEnum(AuditAction), nullable=False, index=True)
    field_name = Column(String, nullable=True)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
