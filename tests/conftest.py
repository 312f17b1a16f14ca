"""
Shared test fixtures — SQLite test database, test client, scoping form + snapshot factories.
"""

import os
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Set DATABASE_URL before importing app modules
os.environ["DATABASE_URL"] = "sqlite:///./test.db"

from backend import models
from backend.database import Base, get_db
from backend.main import app
from backend.production.snapshot import ScopingSnapshot


TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


@pytest.fixture
def db():
    """Direct database session for test setup/assertions."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


# --- Scoping data ---

def _base_area(**overrides):
    area = {
        "area_type": "Commercial",
        "square_footage": 25000,
        "project_scope": "Full",
        "lod": "300",
        "cad_deliverable": "AutoCAD",
        "structural": {"enabled": True, "sqft": 25000},
        "mepf": {"enabled": True, "sqft": 25000},
        "act": {"enabled": True, "sqft": 15000},
        "below_floor": {"enabled": False},
    }
    area.update(overrides)
    return area


def _base_form(**overrides):
    form = {
        "upid": "S2P-42-2026",
        "project_name": "Test Building",
        "project_address": "123 Main St, Troy NY",
        "client_company": "Acme Corp",
        "number_of_floors": 3,
        "dispatch_location": "Troy NY",
        "era": "Modern",
        "room_density": 2,
        "est_scan_days": 4,
        "techs_planned": 2,
        "pricing_tier": "Standard",
        "lod": "300",
        "bim_deliverable": "Revit",
        "bim_version": "2024",
        "georeferencing": True,
        "cad_deliverable": "AutoCAD",
        "areas": [_base_area()],
    }
    form.update(overrides)
    return form


@pytest.fixture
def area():
    """Scope area dict factory: area(square_footage=10000)."""
    return _base_area


@pytest.fixture
def snapshot():
    """ScopingSnapshot factory: snapshot(room_density=4, areas=[...])."""
    def make(**overrides):
        return ScopingSnapshot.model_validate(_base_form(**overrides))
    return make


@pytest.fixture
def scoping_form(db):
    """Persist a scoping form (+ areas) and return it: scoping_form(upid="S2P-1")."""
    def make(**overrides):
        data = _base_form(**overrides)
        areas = data.pop("areas")
        form = models.ScopingForm(**data)
        for i, area_data in enumerate(areas):
            form.areas.append(models.ScopeArea(sort_order=i, **area_data))
        db.add(form)
        db.commit()
        db.refresh(form)
        return form
    return make


@pytest.fixture
def production_project(db, scoping_form):
    """Persist a production project at a given stage with given stage data."""
    def make(current_stage="scheduling", stage_data=None, form=None, version=1):
        form = form or scoping_form()
        project = models.ProductionProject(
            scoping_form_id=form.id,
            upid=form.upid,
            current_stage=current_stage,
            stage_data=stage_data if stage_data is not None else {"scheduling": {}},
            version=version,
        )
        db.add(project)
        db.commit()
        db.refresh(project)
        return project
    return make
