"""takeoff_schema

Revision ID: 001_takeoff_schema
Revises:
Create Date: 2026-10-18

Creates the estimator schema:
- organizations, extraction_jobs, extraction_pages
- detections_draft / detections_validated / detections_ai_original
- elevation_calcs, job_totals (derived caches)
- takeoffs, takeoff_sections, takeoff_line_items

Every create is guarded by _table_exists so the migration is idempotent
when Base.metadata.create_all() already created the tables.
"""
import logging
from alembic import op
import sqlalchemy as sa
from sqlalchemy import text
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision = '001_takeoff_schema'
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger("alembic.001")

DETECTION_TABLES = ['detections_draft', 'detections_validated', 'detections_ai_original']


def _table_exists(conn, table_name: str) -> bool:
    result = conn.execute(
        text(
            "SELECT EXISTS("
            "  SELECT 1 FROM information_schema.tables"
            "  WHERE table_name = :tname"
            ")"
        ),
        {"tname": table_name},
    )
    return bool(result.scalar())


def _create(conn, table_name: str, *columns) -> None:
    if not _table_exists(conn, table_name):
        op.create_table(table_name, *columns)
        logger.info(f"Created table: {table_name}")
    else:
        logger.info(f"Table {table_name} already exists, skipping create")


def _detection_columns():
    return [
        sa.Column('id', UUID(as_uuid=False), primary_key=True),
        sa.Column('job_id', UUID(as_uuid=False), sa.ForeignKey('extraction_jobs.id'), nullable=False),
        sa.Column('page_id', UUID(as_uuid=False), sa.ForeignKey('extraction_pages.id'), nullable=False, index=True),
        sa.Column('class', sa.String(50), server_default='unclassified'),
        sa.Column('detection_index', sa.Integer, server_default='0'),
        sa.Column('confidence', sa.Float, nullable=True),
        sa.Column('pixel_x', sa.Float, nullable=True),
        sa.Column('pixel_y', sa.Float, nullable=True),
        sa.Column('pixel_width', sa.Float, nullable=True),
        sa.Column('pixel_height', sa.Float, nullable=True),
        sa.Column('polygon_points', JSONB, nullable=True),
        sa.Column('is_triangle', sa.Boolean, server_default=sa.false()),
        sa.Column('status', sa.String(20), server_default='auto'),
        sa.Column('real_width_in', sa.Float, nullable=True),
        sa.Column('real_height_in', sa.Float, nullable=True),
        sa.Column('real_width_ft', sa.Float, nullable=True),
        sa.Column('real_height_ft', sa.Float, nullable=True),
        sa.Column('area_sf', sa.Float, nullable=True),
        sa.Column('perimeter_lf', sa.Float, nullable=True),
        sa.Column('markup_type', sa.String(20), server_default='polygon'),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    conn = op.get_bind()

    # ── organizations / jobs / pages ──────────────────────────────────────────
    _create(
        conn, 'organizations',
        sa.Column('id', UUID(as_uuid=False), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('settings', JSONB, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    _create(
        conn, 'extraction_jobs',
        sa.Column('id', UUID(as_uuid=False), primary_key=True),
        sa.Column('organization_id', UUID(as_uuid=False), sa.ForeignKey('organizations.id'), nullable=True, index=True),
        sa.Column('project_name', sa.String(255), nullable=True),
        sa.Column('status', sa.String(50), server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    _create(
        conn, 'extraction_pages',
        sa.Column('id', UUID(as_uuid=False), primary_key=True),
        sa.Column('job_id', UUID(as_uuid=False), sa.ForeignKey('extraction_jobs.id'), nullable=False, index=True),
        sa.Column('page_number', sa.Integer, server_default='0'),
        sa.Column('page_type', sa.String(50), server_default='elevation'),
        sa.Column('scale_ratio', sa.Float, nullable=True),
        sa.Column('dpi', sa.Float, nullable=True),
        sa.Column('elevation_name', sa.String(100), nullable=True),
        sa.Column('image_url', sa.Text, nullable=True),
        sa.Column('original_image_url', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── detection tiers ───────────────────────────────────────────────────────
    for table_name in DETECTION_TABLES:
        _create(conn, table_name, *_detection_columns())

    # ── derived caches ────────────────────────────────────────────────────────
    _create(
        conn, 'elevation_calcs',
        sa.Column('page_id', UUID(as_uuid=False), sa.ForeignKey('extraction_pages.id'), primary_key=True),
        sa.Column('job_id', UUID(as_uuid=False), sa.ForeignKey('extraction_jobs.id'), index=True),
        sa.Column('calc_json', JSONB, nullable=False),
        sa.Column('net_siding_sf', sa.Float, server_default='0'),
        sa.Column('confidence_avg', sa.Float, nullable=True),
        sa.Column('computed_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    _create(
        conn, 'job_totals',
        sa.Column('job_id', UUID(as_uuid=False), sa.ForeignKey('extraction_jobs.id'), primary_key=True),
        sa.Column('totals_json', JSONB, nullable=False),
        sa.Column('elevations_processed', JSONB, nullable=True),
        sa.Column('siding_squares', sa.Float, server_default='0'),
        sa.Column('calculation_version', sa.String(20), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── takeoffs ──────────────────────────────────────────────────────────────
    _create(
        conn, 'takeoffs',
        sa.Column('id', UUID(as_uuid=False), primary_key=True),
        sa.Column('job_id', UUID(as_uuid=False), sa.ForeignKey('extraction_jobs.id'), nullable=False),
        sa.Column('markup_percent', sa.Float, nullable=True),
        sa.Column('methodology', sa.String(20), nullable=True),
        sa.Column('material_cost', sa.Float, server_default='0'),
        sa.Column('labor_cost', sa.Float, server_default='0'),
        sa.Column('overhead_cost', sa.Float, server_default='0'),
        sa.Column('subtotal', sa.Float, server_default='0'),
        sa.Column('markup_amount', sa.Float, server_default='0'),
        sa.Column('insurance_amount', sa.Float, server_default='0'),
        sa.Column('final_price', sa.Float, server_default='0'),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('job_id', name='uq_takeoff_job'),
    )
    _create(
        conn, 'takeoff_sections',
        sa.Column('id', UUID(as_uuid=False), primary_key=True),
        sa.Column('takeoff_id', UUID(as_uuid=False), sa.ForeignKey('takeoffs.id'), nullable=False, index=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('sort_order', sa.Integer, server_default='0'),
    )
    _create(
        conn, 'takeoff_line_items',
        sa.Column('id', UUID(as_uuid=False), primary_key=True),
        sa.Column('takeoff_id', UUID(as_uuid=False), sa.ForeignKey('takeoffs.id'), nullable=False),
        sa.Column('section_id', UUID(as_uuid=False), sa.ForeignKey('takeoff_sections.id'), nullable=True),
        sa.Column('description', sa.Text, server_default=''),
        sa.Column('item_type', sa.String(20), nullable=True),
        sa.Column('quantity', sa.Float, server_default='0'),
        sa.Column('unit', sa.String(20), server_default='EA'),
        sa.Column('material_unit_cost', sa.Float, server_default='0'),
        sa.Column('labor_unit_cost', sa.Float, server_default='0'),
        sa.Column('equipment_unit_cost', sa.Float, server_default='0'),
        sa.Column('presentation_group', sa.String(100), nullable=True),
        sa.Column('sort_order', sa.Integer, server_default='0'),
        sa.Column('material_extended', sa.Float, server_default='0'),
        sa.Column('labor_extended', sa.Float, server_default='0'),
        sa.Column('line_total', sa.Float, server_default='0'),
        sa.Column('is_deleted', sa.Boolean, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    if _table_exists(conn, 'takeoff_line_items'):
        op.execute(
            "CREATE INDEX IF NOT EXISTS ix_line_items_takeoff_live "
            "ON takeoff_line_items (takeoff_id, is_deleted)"
        )


def downgrade() -> None:
    conn = op.get_bind()

    for table_name in [
        'takeoff_line_items', 'takeoff_sections', 'takeoffs',
        'job_totals', 'elevation_calcs',
        *DETECTION_TABLES,
        'extraction_pages', 'extraction_jobs', 'organizations',
    ]:
        if _table_exists(conn, table_name):
            op.drop_table(table_name)
            logger.info(f"Dropped table: {table_name}")
