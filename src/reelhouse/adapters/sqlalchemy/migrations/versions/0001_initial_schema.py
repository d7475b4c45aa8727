"""Initial import schema: entities, claims, nominations, manifests, cursors.

Revision ID: 0001
Revises:
Create Date: 2026-10-01 00:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

ENUM = sa.String(32)


def _timestamps(*names: str) -> list[sa.Column[object]]:
    return [sa.Column(name, sa.DateTime(timezone=True), nullable=True) for name in names]


def upgrade() -> None:
    for table, label, extra in (
        ("movie", "title", sa.Column("release_date", sa.Date(), nullable=True)),
        ("person", "name", sa.Column("known_for_department", sa.String(), nullable=True)),
    ):
        op.create_table(
            table,
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column(label, sa.String(), nullable=False),
            extra,
            sa.Column("depth", ENUM, nullable=False),
            sa.Column("popularity", sa.Float(), nullable=True),
            sa.Column("raw_payload", sa.JSON(), nullable=False),
            sa.Column("enrichment_error", sa.Text(), nullable=True),
            *_timestamps("created_at", "updated_at"),
            sa.PrimaryKeyConstraint("id", name=f"pk_{table}"),
        )

    op.create_table(
        "external_id",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("kind", ENUM, nullable=False),
        sa.Column("namespace", ENUM, nullable=False),
        sa.Column("value", sa.String(), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        *_timestamps("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_external_id"),
        sa.UniqueConstraint(
            "kind", "namespace", "value", name="uq_external_id_kind_namespace_value"
        ),
    )
    op.create_index("ix_external_id_entity_id", "external_id", ["entity_id"])

    op.create_table(
        "nomination",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("batch_key", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("relation_key", sa.String(), nullable=False),
        sa.Column("role", ENUM, nullable=False),
        sa.Column("movie_id", sa.Uuid(), nullable=False),
        sa.Column("person_id", sa.Uuid(), nullable=True),
        sa.Column("won", sa.Boolean(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        *_timestamps("created_at"),
        sa.ForeignKeyConstraint(
            ["movie_id"], ["movie.id"], name="fk_nomination_movie_id_movie"
        ),
        sa.ForeignKeyConstraint(
            ["person_id"], ["person.id"], name="fk_nomination_person_id_person"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_nomination"),
        sa.UniqueConstraint(
            "batch_key", "category", "relation_key", name="uq_nomination_batch_category_relation"
        ),
    )

    op.create_table(
        "import_manifest",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("batch_key", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("params", sa.JSON(), nullable=False),
        sa.Column("status", ENUM, nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("abandoned", sa.Boolean(), nullable=False),
        *_timestamps("created_at", "updated_at", "collected_at", "completed_at", "archived_at"),
        sa.PrimaryKeyConstraint("id", name="pk_import_manifest"),
        sa.UniqueConstraint("batch_key", name="uq_import_manifest_batch_key"),
    )

    op.create_table(
        "manifest_entity",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("manifest_id", sa.Uuid(), nullable=False),
        sa.Column("kind", ENUM, nullable=False),
        sa.Column("namespace", ENUM, nullable=False),
        sa.Column("value", sa.String(), nullable=False),
        sa.Column("hints", sa.JSON(), nullable=False),
        sa.Column("status", ENUM, nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("match_confidence", sa.Float(), nullable=True),
        *_timestamps("updated_at"),
        sa.ForeignKeyConstraint(
            ["manifest_id"],
            ["import_manifest.id"],
            name="fk_manifest_entity_manifest_id_import_manifest",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_manifest_entity"),
        sa.UniqueConstraint(
            "manifest_id", "kind", "namespace", "value", name="uq_manifest_entity_reference"
        ),
    )
    op.create_index(
        "ix_manifest_entity_manifest_status", "manifest_entity", ["manifest_id", "status"]
    )

    op.create_table(
        "manifest_relation",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("manifest_id", sa.Uuid(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("role", ENUM, nullable=False),
        sa.Column("relation_key", sa.String(), nullable=False),
        sa.Column("movie_ref", sa.String(), nullable=True),
        sa.Column("person_ref", sa.String(), nullable=True),
        sa.Column("won", sa.Boolean(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("status", ENUM, nullable=False),
        sa.Column("nomination_id", sa.Uuid(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        *_timestamps("updated_at"),
        sa.ForeignKeyConstraint(
            ["manifest_id"],
            ["import_manifest.id"],
            name="fk_manifest_relation_manifest_id_import_manifest",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_manifest_relation"),
        sa.UniqueConstraint(
            "manifest_id", "category", "relation_key", name="uq_manifest_relation_key"
        ),
    )
    op.create_index(
        "ix_manifest_relation_manifest_status", "manifest_relation", ["manifest_id", "status"]
    )

    op.create_table(
        "import_cursor",
        sa.Column("stream", sa.String(), nullable=False),
        sa.Column("kind", ENUM, nullable=False),
        sa.Column("start_position", sa.Integer(), nullable=False),
        sa.Column("end_position", sa.Integer(), nullable=True),
        sa.Column("current_position", sa.Integer(), nullable=False),
        sa.Column("last_completed_position", sa.Integer(), nullable=False),
        sa.Column("status", ENUM, nullable=False),
        sa.Column("params", sa.JSON(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        *_timestamps("started_at", "updated_at", "completed_at"),
        sa.PrimaryKeyConstraint("stream", name="pk_import_cursor"),
    )

    op.create_table(
        "admission_decision",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("kind", ENUM, nullable=False),
        sa.Column("namespace", ENUM, nullable=False),
        sa.Column("value", sa.String(), nullable=False),
        sa.Column("tier", ENUM, nullable=False),
        sa.Column("criteria_met", sa.JSON(), nullable=False),
        sa.Column("criteria_failed", sa.JSON(), nullable=False),
        sa.Column("signals", sa.JSON(), nullable=False),
        sa.Column("source", sa.String(), nullable=True),
        *_timestamps("decided_at"),
        sa.PrimaryKeyConstraint("id", name="pk_admission_decision"),
    )
    op.create_index(
        "ix_admission_decision_reference", "admission_decision", ["namespace", "value"]
    )


def downgrade() -> None:
    op.drop_index("ix_admission_decision_reference", table_name="admission_decision")
    op.drop_table("admission_decision")
    op.drop_table("import_cursor")
    op.drop_index("ix_manifest_relation_manifest_status", table_name="manifest_relation")
    op.drop_table("manifest_relation")
    op.drop_index("ix_manifest_entity_manifest_status", table_name="manifest_entity")
    op.drop_table("manifest_entity")
    op.drop_table("import_manifest")
    op.drop_table("nomination")
    op.drop_index("ix_external_id_entity_id", table_name="external_id")
    op.drop_table("external_id")
    op.drop_table("person")
    op.drop_table("movie")
