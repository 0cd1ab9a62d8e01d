"""Pytest configuration and shared fixtures."""
import pytest
from sqlalchemy.orm import sessionmaker

from integration_board.auth import AuthContext
from integration_board.database import Base, build_engine
from integration_board.models.domain import Service, ServiceRecord
from integration_board.models.audit import RecordAuditLog
from integration_board.models.enums import RecordStatus, UserRole
from integration_board.services.audit_logger import AuditLogger
from integration_board.services.lifecycle import RecordLifecycleManager


@pytest.fixture
def session_factory(tmp_path):
    """Fresh file-backed SQLite database for each test."""
    # A file, not :memory:, so the audit worker thread sees the same data
    engine = build_engine(f"sqlite:///{tmp_path / 'board.db'}")
    Base.metadata.create_all(engine)

    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory

    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def audit_logger(session_factory):
    logger = AuditLogger(session_factory)
    logger.start()
    yield logger
    logger.stop()


@pytest.fixture
def admin():
    return AuthContext(user_id="admin_1", email="admin@example.com", role=UserRole.ADMIN)


@pytest.fixture
def viewer():
    return AuthContext(user_id="viewer_1", email="viewer@example.com", role=UserRole.VIEWER)


@pytest.fixture
def manager(db_session, audit_logger, admin):
    return RecordLifecycleManager(db_session, audit_logger, admin)


@pytest.fixture
def rcv_service(db_session):
    service = Service(name="RC-V", description="Recepção de clientes")
    db_session.add(service)
    db_session.commit()
    db_session.refresh(service)
    return service


@pytest.fixture
def smp_service(db_session):
    service = Service(name="SMP")
    db_session.add(service)
    db_session.commit()
    db_session.refresh(service)
    return service


@pytest.fixture
def andamento_record(db_session, rcv_service):
    """An RC-V record already in progress."""
    record = ServiceRecord(
        service_id=rcv_service.id,
        client_name="Acme Transportes",
        status=RecordStatus.ANDAMENTO,
        owner="Ana",
        integration_type="API",
        start_date="2024-01-01",
    )
    db_session.add(record)
    db_session.commit()
    db_session.refresh(record)
    return record


@pytest.fixture
def audit_entries(db_session, audit_logger):
    """Reader for the audit rows of a record, once queued writes have landed."""
    def _entries(record_id):
        audit_logger.flush()
        db_session.expire_all()
        return db_session.query(RecordAuditLog).filter(RecordAuditLog.record_id == record_id).all()
    return _entries
