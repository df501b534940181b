"""ORM models for the facade estimator — SQLAlchemy 2.0"""
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import (
    String, Text, Boolean, Integer, Float, DateTime,
    ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from estimator.db import Base


def gen_uuid():
    return str(uuid.uuid4())


# ── ORGANIZATIONS ────────────────────────────────────────────────────────────
class Organization(Base):
    __tablename__ = "organizations"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Raw pricing settings; read through pricing_config.resolve_pricing_config
    settings: Mapped[Optional[dict]] = mapped_column(JSONB, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    jobs: Mapped[list["ExtractionJob"]] = relationship("ExtractionJob", back_populates="organization")


# ── EXTRACTION JOBS & PAGES ──────────────────────────────────────────────────
class ExtractionJob(Base):
    __tablename__ = "extraction_jobs"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    organization_id: Mapped[Optional[str]] = mapped_column(
        UUID(as_uuid=False), ForeignKey("organizations.id"), index=True
    )
    project_name: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(50), default="pending")  # pending|extracted|priced
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    organization: Mapped[Optional["Organization"]] = relationship("Organization", back_populates="jobs")
    pages: Mapped[list["ExtractionPage"]] = relationship("ExtractionPage", back_populates="job")


class ExtractionPage(Base):
    __tablename__ = "extraction_pages"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    job_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("extraction_jobs.id"), nullable=False, index=True
    )
    page_number: Mapped[int] = mapped_column(Integer, default=0)
    page_type: Mapped[str] = mapped_column(String(50), default="elevation")
    scale_ratio: Mapped[Optional[float]] = mapped_column(Float)   # real feet per pixel
    dpi: Mapped[Optional[float]] = mapped_column(Float)
    elevation_name: Mapped[Optional[str]] = mapped_column(String(100))
    image_url: Mapped[Optional[str]] = mapped_column(Text)
    original_image_url: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    job: Mapped["ExtractionJob"] = relationship("ExtractionJob", back_populates="pages")


# ── DETECTIONS (three tiers, identical columns) ──────────────────────────────
class DetectionColumns:
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    job_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("extraction_jobs.id"), nullable=False)
    page_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("extraction_pages.id"), nullable=False, index=True
    )
    detection_class: Mapped[str] = mapped_column("class", String(50), default="unclassified")
    detection_index: Mapped[int] = mapped_column(Integer, default=0)
    confidence: Mapped[Optional[float]] = mapped_column(Float)
    pixel_x: Mapped[Optional[float]] = mapped_column(Float)
    pixel_y: Mapped[Optional[float]] = mapped_column(Float)
    pixel_width: Mapped[Optional[float]] = mapped_column(Float)
    pixel_height: Mapped[Optional[float]] = mapped_column(Float)
    polygon_points: Mapped[Optional[dict]] = mapped_column(JSONB)
    is_triangle: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(20), default="auto")  # auto|verified|edited|deleted
    real_width_in: Mapped[Optional[float]] = mapped_column(Float)
    real_height_in: Mapped[Optional[float]] = mapped_column(Float)
    real_width_ft: Mapped[Optional[float]] = mapped_column(Float)
    real_height_ft: Mapped[Optional[float]] = mapped_column(Float)
    area_sf: Mapped[Optional[float]] = mapped_column(Float)
    perimeter_lf: Mapped[Optional[float]] = mapped_column(Float)
    markup_type: Mapped[str] = mapped_column(String(20), default="polygon")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class DraftDetection(DetectionColumns, Base):
    """User edits. Re-detection soft-deletes these and appends a new set."""
    __tablename__ = "detections_draft"


class ValidatedDetection(DetectionColumns, Base):
    __tablename__ = "detections_validated"


class AiOriginalDetection(DetectionColumns, Base):
    __tablename__ = "detections_ai_original"


# ── DERIVED ROWS (caches, always fully recomputed) ───────────────────────────
class ElevationCalcRow(Base):
    __tablename__ = "elevation_calcs"
    page_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("extraction_pages.id"), primary_key=True
    )
    job_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("extraction_jobs.id"), index=True)
    calc_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
    net_siding_sf: Mapped[float] = mapped_column(Float, default=0.0)
    confidence_avg: Mapped[Optional[float]] = mapped_column(Float)
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class JobTotalsRow(Base):
    __tablename__ = "job_totals"
    job_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("extraction_jobs.id"), primary_key=True
    )
    totals_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
    elevations_processed: Mapped[list] = mapped_column(JSONB, default=list)
    siding_squares: Mapped[float] = mapped_column(Float, default=0.0)
    calculation_version: Mapped[str] = mapped_column(String(20), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


# ── TAKEOFFS ──────────────────────────────────────────────────────────────────
class Takeoff(Base):
    __tablename__ = "takeoffs"
    __table_args__ = (UniqueConstraint("job_id", name="uq_takeoff_job"),)
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    job_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("extraction_jobs.id"), nullable=False)
    # NULL means "use the organization default"; see pricing_config.resolve_markup
    markup_percent: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    methodology: Mapped[Optional[str]] = mapped_column(String(20))  # NULL → organization setting
    material_cost: Mapped[float] = mapped_column(Float, default=0.0)
    labor_cost: Mapped[float] = mapped_column(Float, default=0.0)
    overhead_cost: Mapped[float] = mapped_column(Float, default=0.0)
    subtotal: Mapped[float] = mapped_column(Float, default=0.0)
    markup_amount: Mapped[float] = mapped_column(Float, default=0.0)
    insurance_amount: Mapped[float] = mapped_column(Float, default=0.0)
    final_price: Mapped[float] = mapped_column(Float, default=0.0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    sections: Mapped[list["TakeoffSection"]] = relationship("TakeoffSection", back_populates="takeoff")

    __mapper_args__ = {"version_id_col": version}


class TakeoffSection(Base):
    __tablename__ = "takeoff_sections"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    takeoff_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("takeoffs.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    takeoff: Mapped["Takeoff"] = relationship("Takeoff", back_populates="sections")


class TakeoffLineItem(Base):
    __tablename__ = "takeoff_line_items"
    __table_args__ = (Index("ix_line_items_takeoff_live", "takeoff_id", "is_deleted"),)
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    takeoff_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("takeoffs.id"), nullable=False)
    section_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("takeoff_sections.id"))
    description: Mapped[str] = mapped_column(Text, default="")
    item_type: Mapped[Optional[str]] = mapped_column(String(20))  # material|labor|overhead|paint
    quantity: Mapped[float] = mapped_column(Float, default=0.0)
    unit: Mapped[str] = mapped_column(String(20), default="EA")
    material_unit_cost: Mapped[float] = mapped_column(Float, default=0.0)
    labor_unit_cost: Mapped[float] = mapped_column(Float, default=0.0)
    equipment_unit_cost: Mapped[float] = mapped_column(Float, default=0.0)
    presentation_group: Mapped[Optional[str]] = mapped_column(String(100))
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    # Cached extensions, rewritten on every save
    material_extended: Mapped[float] = mapped_column(Float, default=0.0)
    labor_extended: Mapped[float] = mapped_column(Float, default=0.0)
    line_total: Mapped[float] = mapped_column(Float, default=0.0)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
