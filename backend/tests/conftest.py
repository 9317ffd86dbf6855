import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from compliance_docs.config import settings
from compliance_docs.database import get_db, get_engine, init_db
from compliance_docs.dependencies import get_broker
from compliance_docs.main import app
from compliance_docs.models.entity import Driver, User, Vehicle
from compliance_docs.services.blob_store import LocalBlobStore
from compliance_docs.services.document_repository import DocumentRepository
from compliance_docs.services.document_service import DocumentService
from compliance_docs.services.entity_validator import EntityValidator
from compliance_docs.services.query_service import QueryService
from compliance_docs.services.queue_publisher import ProcessingQueuePublisher
from compliance_docs.services.upload_service import UploadOrchestrator
from compliance_docs.services.verification_service import VerificationStateMachine
from compliance_docs.utils.filesystem import ensure_storage_dirs

DRIVER_ID = "0d86b3b8-712f-43dc-a640-f17533df547c"
VEHICLE_ID = "7a1c2f0e-3b4d-4e5f-8a9b-0c1d2e3f4a5b"
OFFICER_ID = "5f0e9d8c-7b6a-4d3c-9b2a-1f0e9d8c7b6a"


class RecordingBroker:
    """In-memory stand-in for RabbitMQ that remembers every publish."""

    def __init__(self):
        self.published: list[dict] = []
        self.fail_routing_keys: set[str] = set()
        self.closed = False

    def fail_on(self, *routing_keys: str):
        self.fail_routing_keys.update(routing_keys)

    async def publish(self, exchange, routing_key, payload, *, priority=None, persistent=True, ttl_ms=None):
        if routing_key in self.fail_routing_keys:
            raise ConnectionError("broker unavailable")
        self.published.append({
            "exchange": exchange,
            "routing_key": routing_key,
            "payload": payload,
            "priority": priority,
            "persistent": persistent,
            "ttl_ms": ttl_ms,
        })

    async def queue_status(self, queue_names):
        return [
            {"queue_name": name, "message_count": 0, "consumer_count": 1, "status": "active"}
            for name in queue_names
        ]

    async def close(self):
        self.closed = True

    def routed(self, routing_key: str) -> list[dict]:
        return [m for m in self.published if m["routing_key"] == routing_key]


@pytest.fixture
def tmp_storage(tmp_path, monkeypatch):
    storage = tmp_path / "storage"
    storage.mkdir()
    monkeypatch.setattr(settings, "storage_root", storage)
    return storage


@pytest.fixture
def test_db(tmp_storage):
    engine = get_engine(f"sqlite:///{tmp_storage / 'test.sqlite'}")
    TestSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    init_db(engine)

    def override_get_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestSession
    app.dependency_overrides.pop(get_db, None)
    engine.dispose()


@pytest.fixture
def db(test_db):
    session = test_db()
    session.add_all([
        Driver(id=DRIVER_ID, full_name="Amadou Bello", license_number="DL-0042", status="active"),
        Vehicle(id=VEHICLE_ID, plate_number="LT-123-AB", make="Toyota", model="Corolla"),
        User(id=OFFICER_ID, full_name="Grace Nkem", email="grace.nkem@transport.example", role="tax_officer"),
    ])
    session.commit()
    yield session
    session.close()


@pytest.fixture
def broker():
    return RecordingBroker()


@pytest.fixture
def blobs(tmp_storage):
    ensure_storage_dirs(tmp_storage)
    return LocalBlobStore(settings.documents_dir)


@pytest.fixture
def commits():
    return []


@pytest.fixture
def repository(db, commits):
    return DocumentRepository(db, on_commit=commits.append)


@pytest.fixture
def publisher(broker):
    return ProcessingQueuePublisher(broker)


@pytest.fixture
def validator(db):
    return EntityValidator(db)


@pytest.fixture
def orchestrator(validator, blobs, repository, publisher):
    return UploadOrchestrator(validator, blobs, repository, publisher)


@pytest.fixture
def verification(repository, publisher, validator):
    return VerificationStateMachine(repository, publisher, validator, allow_redecision=True)


@pytest.fixture
def documents(repository, blobs, publisher):
    return DocumentService(repository, blobs, publisher)


@pytest.fixture
def queries(repository):
    return QueryService(repository)


@pytest.fixture
def client(db, broker):
    app.dependency_overrides[get_broker] = lambda: broker
    c = TestClient(app)
    yield c
    app.dependency_overrides.pop(get_broker, None)


@pytest.fixture
def auth():
    return {"X-User-Id": OFFICER_ID}
