"""Shipment document linking schema

Revision ID: 001_shiplink_schema
Revises:
Create Date: 2026-10-17

Shipments and their containers, classified documents, links, link candidates,
workflow anomalies, shipment blockers, linking runs and the audit log.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import ENUM as PgENUM
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_shiplink_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ENUMS = {
    "shipment_status": ("open", "delivered", "closed", "cancelled"),
    "document_direction": ("inbound", "outbound", "unknown"),
    "match_type": ("booking", "mbl", "hbl", "container", "none"),
    "link_source": ("realtime", "backfill", "migration"),
    "link_validation_status": ("unvalidated", "confirmed", "flagged", "removed"),
    "candidate_status": ("pending", "resolved", "dismissed"),
    "blocker_type": ("missing_si", "missing_vgm", "missing_cargo_gate_in"),
    "blocker_severity": ("medium", "high", "critical"),
    "linking_run_status": ("running", "completed", "failed"),
}


def _enum(name: str) -> PgENUM:
    return PgENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    ]


def upgrade() -> None:
    for name, values in ENUMS.items():
        quoted = ", ".join(f"'{v}'" for v in values)
        op.execute(f"CREATE TYPE {name} AS ENUM ({quoted})")

    op.create_table(
        "shipments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_number", sa.String(100), nullable=True),
        sa.Column("mbl_number", sa.String(100), nullable=True),
        sa.Column("hbl_number", sa.String(100), nullable=True),
        sa.Column("container_number_primary", sa.String(20), nullable=True),
        sa.Column("status", _enum("shipment_status"), nullable=False, server_default="open"),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("si_cutoff", sa.DateTime(timezone=True), nullable=True),
        sa.Column("vgm_cutoff", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cargo_cutoff", sa.DateTime(timezone=True), nullable=True),
        sa.Column("workflow_state", sa.String(100), nullable=True),
        sa.Column("workflow_phase", sa.String(50), nullable=True),
        sa.Column("workflow_rank", sa.Integer, nullable=True),
        sa.Column("workflow_updated_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_shipments_booking_number", "shipments", ["booking_number"])
    op.create_index("ix_shipments_mbl_number", "shipments", ["mbl_number"])
    op.create_index("ix_shipments_hbl_number", "shipments", ["hbl_number"])

    op.create_table(
        "shipment_containers",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("shipment_id", UUID(as_uuid=True),
                  sa.ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("container_number", sa.String(20), nullable=False),
    )
    op.create_index("ix_shipment_containers_shipment_id", "shipment_containers", ["shipment_id"])

    op.create_table(
        "classified_documents",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("email_id", sa.String(255), nullable=False, unique=True),
        sa.Column("thread_id", sa.String(255), nullable=False),
        sa.Column("document_type", sa.String(100), nullable=False),
        sa.Column("direction", _enum("document_direction"), nullable=False, server_default="unknown"),
        sa.Column("identifiers", sa.JSON, nullable=True),
        sa.Column("subject", sa.Text, nullable=True),
        sa.Column("body_text", sa.Text, nullable=True),
        sa.Column("attachment_text", sa.Text, nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("upstream_fingerprint", sa.String(128), nullable=True),
        sa.Column("content_fingerprint", sa.String(64), nullable=True),
        sa.Column("is_primary", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("duplicate_of", sa.String(255), nullable=True),
        sa.Column("thread_position", sa.Integer, nullable=True),
        sa.Column("deduplicated_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_classified_documents_thread_id", "classified_documents", ["thread_id"])
    op.create_index("ix_classified_documents_content_fingerprint", "classified_documents", ["content_fingerprint"])

    op.create_table(
        "shipment_document_links",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("email_id", sa.String(255), nullable=False, unique=True),
        sa.Column("shipment_id", UUID(as_uuid=True), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("match_type", _enum("match_type"), nullable=False),
        sa.Column("matched_value", sa.String(100), nullable=True),
        sa.Column("confidence", sa.Integer, nullable=False),
        sa.Column("link_source", _enum("link_source"), nullable=False, server_default="realtime"),
        sa.Column("is_primary", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("validation_status", _enum("link_validation_status"),
                  nullable=False, server_default="unvalidated"),
        sa.Column("validation_reason", sa.Text, nullable=True),
        sa.Column("validated_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_shipment_document_links_shipment_id", "shipment_document_links", ["shipment_id"])

    op.create_table(
        "link_candidates",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("email_id", sa.String(255), nullable=False, unique=True),
        sa.Column("match_type", _enum("match_type"), nullable=False),
        sa.Column("candidate_shipment_ids", sa.JSON, nullable=False),
        sa.Column("matched_values", sa.JSON, nullable=True),
        sa.Column("status", _enum("candidate_status"), nullable=False, server_default="pending"),
        sa.Column("resolved_by", sa.String(200), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "workflow_anomalies",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("shipment_id", UUID(as_uuid=True), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("email_id", sa.String(255), nullable=False),
        sa.Column("state_code", sa.String(100), nullable=False),
        sa.Column("rank", sa.Integer, nullable=False),
        sa.Column("expected_min_rank", sa.Integer, nullable=False),
        sa.Column("gap", sa.Integer, nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_unique_constraint(
        "uq_workflow_anomalies_shipment_email", "workflow_anomalies", ["shipment_id", "email_id"]
    )
    op.create_index("ix_workflow_anomalies_shipment_id", "workflow_anomalies", ["shipment_id"])

    op.create_table(
        "shipment_blockers",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("shipment_id", UUID(as_uuid=True), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("blocker_type", _enum("blocker_type"), nullable=False),
        sa.Column("severity", _enum("blocker_severity"), nullable=False),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("days_overdue", sa.Float, nullable=False),
        sa.Column("expected_state", sa.String(100), nullable=False),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_unique_constraint(
        "uq_shipment_blockers_shipment_type", "shipment_blockers", ["shipment_id", "blocker_type"]
    )
    op.create_index("ix_shipment_blockers_shipment_id", "shipment_blockers", ["shipment_id"])

    op.create_table(
        "linking_runs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("link_source", _enum("link_source"), nullable=False),
        sa.Column("status", _enum("linking_run_status"), nullable=False, server_default="running"),
        sa.Column("processing_time_ms", sa.Integer, nullable=True),
        sa.Column("report", sa.JSON, nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=True),
        sa.Column("entity_id", sa.String(255), nullable=True),
        sa.Column("action", sa.String(100), nullable=True),
        sa.Column("actor", sa.String(200), nullable=True),
        sa.Column("event_data", sa.JSON, nullable=True),
        sa.Column("previous_state", sa.JSON, nullable=True),
        sa.Column("new_state", sa.JSON, nullable=True),
        sa.Column("rationale", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])


def downgrade() -> None:
    for table in (
        "audit_events",
        "linking_runs",
        "shipment_blockers",
        "workflow_anomalies",
        "link_candidates",
        "shipment_document_links",
        "classified_documents",
        "shipment_containers",
        "shipments",
    ):
        op.drop_table(table)
    for name in reversed(list(ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
