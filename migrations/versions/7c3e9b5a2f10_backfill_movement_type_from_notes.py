"""backfill movement_type from legacy notes

Older transfers only carried their type inside the free-text notes
("Tipo de movimiento: Interna."). Copy it into movement_type and strip the
marker from the notes.

Revision ID: 7c3e9b5a2f10
Revises: 1a2f6c0d4e01
Create Date: 2026-03-02 10:41:03.552917

"""
import logging

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "7c3e9b5a2f10"
down_revision = "1a2f6c0d4e01"
branch_labels = None
depends_on = None

transfers = sa.table(
    "asset_transfers",
    sa.column("id", sa.Integer),
    sa.column("movement_type", sa.String),
    sa.column("notes", sa.Text),
)


def upgrade():
    # Runtime import: the mapping lives with the enum, not in the migration
    from assetdesk.models import _LEGACY_NOTES_RE, MovementType

    conn = op.get_bind()
    rows = conn.execute(
        sa.select(transfers.c.id, transfers.c.notes).where(transfers.c.notes.like("%movimiento%"))
    ).all()

    updated = 0
    for row_id, notes in rows:
        movement = MovementType.from_legacy_notes(notes)
        if movement is None:
            continue
        cleaned = _LEGACY_NOTES_RE.sub("", notes or "").strip(" .\n") or None
        conn.execute(
            transfers.update()
            .where(transfers.c.id == row_id)
            .values(movement_type=movement.value, notes=cleaned)
        )
        updated += 1

    logging.getLogger("alembic.runtime.migration").info("movement_type backfilled for %s transfer(s)", updated)


def downgrade():
    # The notes marker is not restored; movement_type stays authoritative.
    pass
