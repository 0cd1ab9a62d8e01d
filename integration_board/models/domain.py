"""Domain models - services, the client records they own, and role assignments."""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, ForeignKey, Enum as SQLEnum, Text, Index, text
from sqlalchemy.orm import relationship

from integration_board.database import Base
from integration_board.models.enums import RecordStatus, UserRole


def _new_id() -> str:
    return str(uuid.uuid4())


class Service(Base):
    """
    A business line (e.g. "RC-V") owning a set of client records.

    Invariants:
    - name is unique and never changes after creation
    - only description is editable
    """
    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String, nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    records = relationship("ServiceRecord", back_populates="service", cascade="all, delete-orphan")


class ServiceRecord(Base):
    """
    A single client's integration case.

    Invariants enforced by the lifecycle manager (at write time):
    - status is always one of the six RecordStatus values
    - client_name is never empty
    - the required fields of the current status are filled after every save
    - start_date is always present

    Pure-date fields are stored as YYYY-MM-DD strings and meeting_datetime as
    YYYY-MM-DDTHH:MM so no timezone conversion ever touches them.
    """
    __tablename__ = "records"
    __table_args__ = (
        # One live record per client and service; meetings may repeat
        Index(
            "uq_records_service_client",
            "service_id",
            "client_name",
            unique=True,
            postgresql_where=text("status <> 'REUNIAO'"),
            sqlite_where=text("status <> 'REUNIAO'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    service_id = Column(String(36), ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True)

    client_name = Column(String, nullable=False)
    status = Column(SQLEnum(RecordStatus), nullable=False, index=True)
    owner = Column(String, nullable=False, default="")
    notes = Column(Text, nullable=True)

    # Status-conditional fields
    agidesk_ticket = Column(String, nullable=True)
    cadastro_date = Column(String(10), nullable=True)
    meeting_datetime = Column(String(19), nullable=True)
    integration_type = Column(String, nullable=True)
    start_date = Column(String(10), nullable=False)
    end_date = Column(String(10), nullable=True)
    devolucao_date = Column(String(10), nullable=True)
    commercial = Column(String, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    service = relationship("Service", back_populates="records")


class UserRoleAssignment(Base):
    """Role of an authenticated user. Missing rows mean viewer."""
    __tablename__ = "user_roles"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String, nullable=False, unique=True, index=True)
    role = Column(SQLEnum(UserRole, values_callable=lambda e: [m.value for m in e]), nullable=False, default=UserRole.VIEWER)
