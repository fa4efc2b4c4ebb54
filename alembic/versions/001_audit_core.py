"""
============================================================
TARJETA CRC (Class / Responsibilities / Collaborators)
============================================================
Class: 001_audit_core (Alembic Migration)

Responsibilities:
  - Crear el esquema del registro de auditoría desde cero.
  - audit_events + hijos (audit_properties, audit_eventmeta) + audit_notes.

Collaborators:
  - PostgreSQL 14+
  - infrastructure/repositories/postgres (usa este esquema como contrato)

Policy:
  - Convención de nombres:
      pk_<tabla>, uq_<tabla>_<col>, ix_<tabla>_<col>, fk_<tabla>_<col>__<ref_tabla>
  - val_after NULL = "sin after" (propiedad intrínseca sin cambio);
    el JSON 'null' es un cambio real a None.
  - audit_notes.event_id NO tiene FK: las notas sobreviven al borrado
    del evento.
============================================================
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_audit_core"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # =========================================================
    # 1) EVENTS
    # =========================================================
    op.create_table(
        "audit_events",
        sa.Column("id", sa.BigInteger, sa.Identity(always=False), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("actor_name", sa.String(255), nullable=False, server_default=""),
        sa.Column(
            "actor_role", sa.String(255), nullable=False, server_default="none"
        ),
        sa.Column("actor_ip", sa.String(64), nullable=True),
        sa.Column("actor_location", sa.String(255), nullable=True),
        sa.Column("actor_agent", sa.Text, nullable=True),
        sa.Column("classification", sa.String(255), nullable=False),
        sa.Column("subject_type", sa.String(255), nullable=True),
        sa.Column("subject_id", sa.String(64), nullable=True),
        sa.Column("subject_name", sa.Text, nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_audit_events"),
    )
    op.create_index("ix_audit_events_occurred_at", "audit_events", ["occurred_at"])
    op.create_index("ix_audit_events_actor_id", "audit_events", ["actor_id"])
    # Lookup de coalescing: (clasificación, sujeto) + más reciente.
    op.create_index(
        "ix_audit_events_classification",
        "audit_events",
        ["classification", "subject_type", "subject_id", "occurred_at"],
    )

    # =========================================================
    # 2) PROPERTIES
    # =========================================================
    op.create_table(
        "audit_properties",
        sa.Column("id", sa.BigInteger, sa.Identity(always=False), nullable=False),
        sa.Column("event_id", sa.BigInteger, nullable=False),
        sa.Column("prop_key", sa.String(255), nullable=False),
        sa.Column("origin", sa.String(255), nullable=True),
        sa.Column("val_before", sa.Text, nullable=True),
        sa.Column("val_after", sa.Text, nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_audit_properties"),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["audit_events.id"],
            name="fk_audit_properties_event_id__audit_events",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "event_id", "prop_key", name="uq_audit_properties_event_id"
        ),
    )

    # =========================================================
    # 3) EVENTMETA
    # =========================================================
    op.create_table(
        "audit_eventmeta",
        sa.Column("id", sa.BigInteger, sa.Identity(always=False), nullable=False),
        sa.Column("event_id", sa.BigInteger, nullable=False),
        sa.Column("meta_key", sa.String(255), nullable=False),
        sa.Column("meta_value", sa.Text, nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_audit_eventmeta"),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["audit_events.id"],
            name="fk_audit_eventmeta_event_id__audit_events",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("event_id", "meta_key", name="uq_audit_eventmeta_event_id"),
    )

    # =========================================================
    # 4) NOTES
    # =========================================================
    op.create_table(
        "audit_notes",
        sa.Column("id", sa.BigInteger, sa.Identity(always=False), nullable=False),
        sa.Column("event_id", sa.BigInteger, nullable=False),
        sa.Column("author_id", sa.String(64), nullable=False),
        sa.Column("author_name", sa.String(255), nullable=False, server_default=""),
        sa.Column(
            "author_role", sa.String(255), nullable=False, server_default="none"
        ),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("ip", sa.String(64), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_audit_notes"),
    )
    op.create_index("ix_audit_notes_event_id", "audit_notes", ["event_id"])


def downgrade() -> None:
    op.drop_table("audit_notes")
    op.drop_table("audit_eventmeta")
    op.drop_table("audit_properties")
    op.drop_table("audit_events")
