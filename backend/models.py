from sqlalchemy import Column, Integer, String, Float, DateTime, Text, ForeignKey, Boolean, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from .database import Base


# DECISION: current_stage is a VARCHAR, not a DB enum. The stage list lives in
# backend/production/stages.py and is validated there, so reordering or
# renaming a stage doesn't require an enum migration.


# --- Scoping (read-only for the production pipeline) ---

class ScopingForm(Base):
    """Committed intake record — the single source of truth for prefills."""
    __tablename__ = "scoping_forms"

    id = Column(Integer, primary_key=True, index=True)
    upid = Column(String, unique=True, nullable=False)           # SF-54
    project_name = Column(String, nullable=False)                # SF-53
    project_address = Column(Text, nullable=True)                # SF-01
    client_company = Column(String, nullable=True)               # SF-37
    number_of_floors = Column(Integer, nullable=True)            # SF-31
    dispatch_location = Column(String, nullable=True)            # SF-32
    era = Column(String, nullable=True)                          # SF-41 'Modern' | 'Historic'
    room_density = Column(Integer, nullable=True)                # SF-42 0-4
    est_scan_days = Column(Float, nullable=True)                 # SF-48
    techs_planned = Column(Integer, nullable=True)               # SF-49
    pricing_tier = Column(String, nullable=True)                 # SF-45
    lod = Column(String, nullable=True)                          # SF-05 fallback
    bim_deliverable = Column(String, nullable=True)              # SF-11
    bim_version = Column(String, nullable=True)                  # SF-28
    georeferencing = Column(Boolean, default=False)              # SF-09
    cad_deliverable = Column(String, nullable=True)              # SF-10 fallback
    created_at = Column(DateTime, default=datetime.utcnow)

    areas = relationship(
        "ScopeArea",
        back_populates="scoping_form",
        cascade="all, delete-orphan",
        order_by="ScopeArea.sort_order",
    )


class ScopeArea(Base):
    """One scoped area of a building. Area-level fields are read from the first area."""
    __tablename__ = "scope_areas"

    id = Column(Integer, primary_key=True, index=True)
    scoping_form_id = Column(Integer, ForeignKey("scoping_forms.id"), nullable=False)
    sort_order = Column(Integer, default=0)
    area_type = Column(String, nullable=True)          # SF-02
    square_footage = Column(Float, default=0)          # SF-03 (summed)
    project_scope = Column(String, nullable=True)      # SF-04 'Full' | 'Int Only' | 'Ext Only' | 'Mixed'
    lod = Column(String, nullable=True)                # SF-05
    cad_deliverable = Column(String, nullable=True)    # SF-10
    # Toggles stored as {"enabled": bool, "sqft": number}
    structural = Column(JSON, nullable=True)           # SF-07
    mepf = Column(JSON, nullable=True)                 # SF-08
    act = Column(JSON, nullable=True)                  # SF-24
    below_floor = Column(JSON, nullable=True)          # SF-44

    scoping_form = relationship("ScopingForm", back_populates="areas")


# --- Production pipeline ---

class ProductionProject(Base):
    """Aggregate root for one project moving through the six production stages."""
    __tablename__ = "production_projects"

    id = Column(Integer, primary_key=True, index=True)
    scoping_form_id = Column(Integer, ForeignKey("scoping_forms.id"), unique=True, nullable=False)
    upid = Column(String, nullable=False)
    current_stage = Column(String, nullable=False, default="scheduling")
    stage_data = Column(JSON, default=dict)  # {stage: {fieldKey: value}}
    version = Column(Integer, nullable=False, default=1)  # bumped on every write
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    scoping_form = relationship("ScopingForm")
