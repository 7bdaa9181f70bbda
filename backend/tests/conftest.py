import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from shiplink.config import Settings
from shiplink.models.base import Base
# Import all models so they register with Base.metadata for create_all
import shiplink.models  # noqa: F401
from shiplink.models.document import ClassifiedDocument, DocumentDirection
from shiplink.models.shipment import Shipment, ShipmentContainer, ShipmentStatus

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    # Sequential units keep SQLite free of concurrent writers
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        linking_worker_pool_size=1,
        linking_unit_timeout_seconds=30,
    )


@pytest.fixture
async def test_engine(test_settings):
    engine = create_async_engine(test_settings.database_url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(session_factory, test_settings):
    from shiplink.dependencies import get_batch_runner, get_db
    from shiplink.main import app
    from shiplink.pipeline import BatchRunner

    # Requests commit like the real dependency so batch runs see their writes
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_batch_runner] = lambda: BatchRunner(test_settings, session_factory)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_shipment():
    """Build a Shipment with optional secondary containers."""

    def _make(
        booking_number: str | None = None,
        mbl_number: str | None = None,
        hbl_number: str | None = None,
        container: str | None = None,
        secondary_containers: tuple[str, ...] = (),
        status: ShipmentStatus = ShipmentStatus.OPEN,
        **fields,
    ) -> Shipment:
        shipment = Shipment(
            id=uuid.uuid4(),
            booking_number=booking_number,
            mbl_number=mbl_number,
            hbl_number=hbl_number,
            container_number_primary=container,
            status=status,
            **fields,
        )
        shipment.containers = [ShipmentContainer(container_number=c) for c in secondary_containers]
        return shipment

    return _make


@pytest.fixture
def make_document():
    """Build a ClassifiedDocument; identifiers are (type, value) pairs."""
    counter = {"n": 0}

    def _make(
        document_type: str = "booking_confirmation",
        direction: DocumentDirection = DocumentDirection.INBOUND,
        identifiers: list[tuple[str, str]] | None = None,
        thread_id: str = "thread-1",
        received_at: datetime | None = None,
        email_id: str | None = None,
        subject: str | None = None,
        body_text: str | None = None,
        **fields,
    ) -> ClassifiedDocument:
        counter["n"] += 1
        fields.setdefault("is_primary", True)
        return ClassifiedDocument(
            id=uuid.uuid4(),
            email_id=email_id or f"email-{counter['n']:03d}",
            thread_id=thread_id,
            document_type=document_type,
            direction=direction,
            identifiers=[{"type": t, "value": v} for t, v in (identifiers or [])],
            subject=subject,
            body_text=body_text if body_text is not None else f"Document body {counter['n']}",
            received_at=received_at or NOW + timedelta(minutes=counter["n"]),
            **fields,
        )

    return _make
