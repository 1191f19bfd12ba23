"""add stock ledger check constraints

Revision ID: 8b24e6d0c5a3
Revises: 3f9a1c2b7d10
Create Date: 2026-10-17
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8b24e6d0c5a3"
down_revision: Union[str, Sequence[str], None] = "3f9a1c2b7d10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CHECKS = (
    ("products", "ck_product_quantity_nonneg", "quantity >= 0"),
    ("products", "ck_product_par_level_nonneg", "par_level IS NULL OR par_level >= 0"),
    ("stock_movements", "ck_stock_movement_qty_pos", "quantity > 0"),
    ("stock_movements", "ck_stock_movement_balance_nonneg", "balance_after >= 0"),
    ("dispute_products", "ck_dispute_product_qty_pos", "quantity_disputed IS NULL OR quantity_disputed > 0"),
    ("dlcs", "ck_dlc_qty_pos", "quantity > 0"),
)


def _add_check_if_missing(table_name: str, constraint_name: str, check_sql: str) -> None:
    # Idempotent Postgres
    op.execute(
        f"""
        DO $$
        BEGIN
            IF NOT EXISTS (
                SELECT 1
                FROM pg_constraint c
                JOIN pg_class t ON t.oid = c.conrelid
                WHERE t.relname = '{table_name}'
                  AND c.conname = '{constraint_name}'
            ) THEN
                ALTER TABLE {table_name}
                ADD CONSTRAINT {constraint_name}
                CHECK ({check_sql});
            END IF;
        END $$;
        """
    )


def upgrade() -> None:
    # Pas de correction silencieuse des données : un stock négatif existant
    # doit faire échouer la migration (le journal fait foi).
    for table_name, constraint_name, check_sql in CHECKS:
        _add_check_if_missing(table_name, constraint_name, check_sql)


def downgrade() -> None:
    for table_name, constraint_name, _ in reversed(CHECKS):
        op.execute(f"ALTER TABLE {table_name} DROP CONSTRAINT IF EXISTS {constraint_name};")
