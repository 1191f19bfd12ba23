from __future__ import annotations

from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import (
    JSON,
    String,
    Integer,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    Index,
    CheckConstraint,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.app.db.base import Base, IdType, utcnow
from backoffice.app.db.models.core_types import (
    Unit,
    BillStatus,
    DisputeType,
    DisputeStatus,
    MovementDirection,
    MovementReason,
    LossReason,
    DlcStatus,
)

# Quantités à 3 décimales (g / ml), montants à 2 décimales
Quantity = Numeric(14, 3)
Money = Numeric(14, 2)


def _enum(enum_cls, name: str) -> Enum:
    # on persiste les valeurs ("KG", "RETURN"), pas les noms Python
    return Enum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


UnitType = _enum(Unit, "unit")


# ---------- MASTER DATA ----------
class Supplier(Base):
    __tablename__ = "suppliers"
    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    contact_name: Mapped[str | None] = mapped_column(String(255))
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(64))
    address: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    display_name: Mapped[str | None] = mapped_column(String(255))
    aliases: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    unit: Mapped[Unit] = mapped_column(UnitType, default=Unit.pc, nullable=False)

    # Écrit UNIQUEMENT via services.ledger.apply_movement
    quantity: Mapped[Decimal] = mapped_column(Quantity, default=Decimal("0"), nullable=False)
    unit_price: Mapped[Decimal | None] = mapped_column(Money)
    total_value: Mapped[Decimal | None] = mapped_column(Money)
    par_level: Mapped[Decimal | None] = mapped_column(Quantity)
    trackable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    category: Mapped[str | None] = mapped_column(String(128))

    # nom normalisé + famille d'unité, remplis par services.products
    name_key: Mapped[str | None] = mapped_column(String(255))
    unit_family: Mapped[str | None] = mapped_column(String(16))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_product_quantity_nonneg"),
        CheckConstraint("par_level IS NULL OR par_level >= 0", name="ck_product_par_level_nonneg"),
        UniqueConstraint("name_key", "unit_family", name="uq_product_name_key_unit_family"),
    )


# ---------- BILLS ----------
class Bill(Base):
    __tablename__ = "bills"
    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    supplier_id: Mapped[int | None] = mapped_column(ForeignKey("suppliers.id", ondelete="SET NULL"), index=True)
    # fournisseur lu sur le document, lié à Supplier à la confirmation
    supplier_name: Mapped[str | None] = mapped_column(String(255))
    supplier_email: Mapped[str | None] = mapped_column(String(255))
    bill_date: Mapped[date | None] = mapped_column(Date, index=True)
    total_amount: Mapped[Decimal | None] = mapped_column(Money)
    status: Mapped[BillStatus] = mapped_column(
        _enum(BillStatus, "bill_status"),
        default=BillStatus.pending,
        nullable=False,
        index=True,
    )
    raw_content: Mapped[str | None] = mapped_column(Text)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    supplier: Mapped[Supplier | None] = relationship()
    lines: Mapped[list["BillLineItem"]] = relationship(
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillLineItem.position",
    )
    disputes: Mapped[list["Dispute"]] = relationship(back_populates="bill")


class BillLineItem(Base):
    __tablename__ = "bill_line_items"
    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    bill_id: Mapped[int] = mapped_column(ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    # brut OCR avant confirmation, unité canonique après
    unit: Mapped[str | None] = mapped_column(String(32))
    unit_price: Mapped[Decimal | None] = mapped_column(Money)
    total_price: Mapped[Decimal | None] = mapped_column(Money)
    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), index=True)

    bill: Mapped[Bill] = relationship(back_populates="lines")
    product: Mapped[Product | None] = relationship()


# ---------- DISPUTES ----------
class Dispute(Base):
    __tablename__ = "disputes"
    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    bill_id: Mapped[int] = mapped_column(ForeignKey("bills.id", ondelete="RESTRICT"), nullable=False, index=True)
    type: Mapped[DisputeType] = mapped_column(_enum(DisputeType, "dispute_type"), nullable=False)
    status: Mapped[DisputeStatus] = mapped_column(
        _enum(DisputeStatus, "dispute_status"),
        default=DisputeStatus.open,
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    amount_disputed: Mapped[Decimal | None] = mapped_column(Money)
    resolution_notes: Mapped[str | None] = mapped_column(Text)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    bill: Mapped[Bill] = relationship(back_populates="disputes")
    products: Mapped[list["DisputeProduct"]] = relationship(back_populates="dispute", cascade="all, delete-orphan")


class DisputeProduct(Base):
    __tablename__ = "dispute_products"
    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    dispute_id: Mapped[int] = mapped_column(ForeignKey("disputes.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity_disputed: Mapped[Decimal | None] = mapped_column(Quantity)
    description: Mapped[str | None] = mapped_column(Text)

    dispute: Mapped[Dispute] = relationship(back_populates="products")
    product: Mapped[Product] = relationship()

    __table_args__ = (
        CheckConstraint(
            "quantity_disputed IS NULL OR quantity_disputed > 0",
            name="ck_dispute_product_qty_pos",
        ),
    )


# ---------- INVENTORY ----------
class StockMovement(Base):
    """Ligne du journal de stock : append-only, jamais modifiée après création."""

    __tablename__ = "stock_movements"
    id: Mapped[int] = mapped_column(IdType, primary_key=True)

    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    direction: Mapped[MovementDirection] = mapped_column(_enum(MovementDirection, "movement_direction"), nullable=False)
    reason: Mapped[MovementReason] = mapped_column(_enum(MovementReason, "movement_reason"), nullable=False)
    loss_reason: Mapped[LossReason | None] = mapped_column(_enum(LossReason, "loss_reason"))

    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit_price: Mapped[Decimal | None] = mapped_column(Money)
    total_value: Mapped[Decimal | None] = mapped_column(Money)

    bill_id: Mapped[int | None] = mapped_column(ForeignKey("bills.id", ondelete="RESTRICT"), index=True)
    dispute_id: Mapped[int | None] = mapped_column(ForeignKey("disputes.id", ondelete="RESTRICT"), index=True)
    description: Mapped[str | None] = mapped_column(Text)

    happened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_movement_qty_pos"),
        CheckConstraint("balance_after >= 0", name="ck_stock_movement_balance_nonneg"),
        Index("ix_stock_movements_product_id_id", "product_id", "id"),
    )


class Dlc(Base):
    __tablename__ = "dlcs"
    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    bill_id: Mapped[int | None] = mapped_column(ForeignKey("bills.id", ondelete="SET NULL"))
    supplier_id: Mapped[int | None] = mapped_column(ForeignKey("suppliers.id", ondelete="SET NULL"))
    expiration_date: Mapped[date] = mapped_column(Date, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit: Mapped[Unit] = mapped_column(UnitType, nullable=False)
    lot_number: Mapped[str | None] = mapped_column(String(64))
    status: Mapped[DlcStatus] = mapped_column(
        _enum(DlcStatus, "dlc_status"),
        default=DlcStatus.active,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    product: Mapped[Product] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_dlc_qty_pos"),
        Index("ix_dlcs_status_expiration", "status", "expiration_date"),
    )
