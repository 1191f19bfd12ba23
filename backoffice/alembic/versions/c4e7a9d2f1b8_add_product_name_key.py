"""add product name key unique constraint

Revision ID: c4e7a9d2f1b8
Revises: 8b24e6d0c5a3
Create Date: 2026-10-17
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from backoffice.app.db.models.core_types import Unit
from backoffice.services.products import product_identity

# revision identifiers, used by Alembic.
revision: str = "c4e7a9d2f1b8"
down_revision: Union[str, Sequence[str], None] = "8b24e6d0c5a3"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

products = sa.table(
    "products",
    sa.column("id", sa.BigInteger()),
    sa.column("name", sa.String()),
    sa.column("unit", sa.String()),
    sa.column("name_key", sa.String()),
    sa.column("unit_family", sa.String()),
)


def upgrade() -> None:
    op.add_column("products", sa.Column("name_key", sa.String(255)))
    op.add_column("products", sa.Column("unit_family", sa.String(16)))

    # normalisation Python (accents, ponctuation) : pas d'équivalent SQL portable
    bind = op.get_bind()
    rows = bind.execute(sa.select(products.c.id, products.c.name, products.c.unit)).all()
    for row in rows:
        name_key, family = product_identity(row.name, Unit(row.unit))
        bind.execute(
            products.update()
            .where(products.c.id == row.id)
            .values(name_key=name_key, unit_family=family)
        )

    # doublons existants : la migration échoue, à fusionner à la main
    op.create_unique_constraint(
        "uq_product_name_key_unit_family",
        "products",
        ["name_key", "unit_family"],
    )


def downgrade() -> None:
    op.drop_constraint("uq_product_name_key_unit_family", "products", type_="unique")
    op.drop_column("products", "unit_family")
    op.drop_column("products", "name_key")
