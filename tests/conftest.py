import os

# Configure before any app module reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SEED_ON_STARTUP"] = "false"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from config.database import Base, create_db_engine, get_uow, make_session_factory
from modules.catalog.models import Product  # noqa: F401
from modules.customer.models import Customer  # noqa: F401
from modules.order.models import Order, OrderItem  # noqa: F401
from modules.repository.unit_of_work import UnitOfWork
from modules.seed.service import seed_database


@pytest.fixture
def engine(tmp_path):
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'shop.db'}", echo=False)
    Base.metadata.create_all(bind=db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def uow(session_factory):
    unit = UnitOfWork(session_factory)
    yield unit
    unit.close()


@pytest.fixture
def seeded(session_factory):
    """Baseline dataset: 8 products, 5 customers, 3 orders."""
    with UnitOfWork(session_factory) as unit:
        seed_database(unit)
    return session_factory


@pytest.fixture
def client(seeded):
    from main import app

    def _override():
        unit = UnitOfWork(seeded)
        try:
            yield unit
        finally:
            unit.close()

    app.dependency_overrides[get_uow] = _override
    yield TestClient(app)
    app.dependency_overrides.clear()
