"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Identity,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from marketplace.models.api import LedgerEntryType, OrderStatus, WithdrawalStatus


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def _str_enum(enum_cls: type, name: str) -> SQLEnum:
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda x: [e.value for e in x],
    )


class Reseller(Base):
    """
    ORM model for resellers table.

    A vendor store and its wallet. wallet_balance_minor is a cache of the
    sum of the reseller's wallet_ledger_entries and is only written together
    with a ledger row while the reseller row is locked.
    """

    __tablename__ = "resellers"

    id: Mapped[int] = mapped_column(Integer, Identity(), primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    store_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    pix_key: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Wallet
    wallet_balance_minor: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_sales_minor: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("wallet_balance_minor >= 0", name="ck_reseller_wallet_non_negative"),
        CheckConstraint("total_sales_minor >= 0", name="ck_reseller_sales_non_negative"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Reseller(id={self.id}, store_name={self.store_name}, "
            f"balance={self.wallet_balance_minor})>"
        )


class VendorSession(Base):
    """
    ORM model for vendor_sessions table.

    Only the SHA-256 hash of the bearer token is stored.
    """

    __tablename__ = "vendor_sessions"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    reseller_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("resellers.id", ondelete="CASCADE"), nullable=False
    )
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_vendor_sessions_reseller_id", "reseller_id"),
        Index("idx_vendor_sessions_expires_at", "expires_at"),
    )


class Product(Base):
    """
    ORM model for products table.

    stock holds one deliverable credential per line, oldest first.
    """

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, Identity(), primary_key=True)
    reseller_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("resellers.id", ondelete="CASCADE"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    stock: Mapped[str] = mapped_column(Text, nullable=False, default="")
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("price_minor > 0", name="ck_product_price_positive"),
        Index("idx_products_reseller_id", "reseller_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Product(id={self.id}, name={self.name}, active={self.active})>"


class Order(Base):
    """
    ORM model for orders table.

    delivered_content is set iff status is paid. Pending orders past their
    TTL are deleted rather than cancelled.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, Identity(), primary_key=True)
    reseller_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("resellers.id", ondelete="SET NULL"), nullable=True
    )

    status: Mapped[OrderStatus] = mapped_column(
        _str_enum(OrderStatus, "order_status"), nullable=False, default=OrderStatus.PENDING
    )
    total_amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Customer
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    whatsapp: Mapped[str | None] = mapped_column(String(32), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Payment gateway reference
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False, default="pix")
    billing_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    pix_code: Mapped[str | None] = mapped_column(Text, nullable=True)
    pix_qr_code_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    checkout_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Delivery
    delivered_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    whatsapp_delivery_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("total_amount_minor >= 0", name="ck_order_total_non_negative"),
        Index("idx_orders_status_created_at", "status", "created_at"),
        Index("idx_orders_reseller_id", "reseller_id"),
        Index(
            "idx_orders_billing_id",
            "billing_id",
            unique=True,
            postgresql_where=(billing_id.isnot(None)),
        ),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Order(id={self.id}, status={self.status}, "
            f"total={self.total_amount_minor}, reseller_id={self.reseller_id})>"
        )


class OrderItem(Base):
    """
    ORM model for order_items table.

    product_name and price_minor are snapshots taken at checkout.
    """

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, Identity(), primary_key=True)
    order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )

    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    price_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    delivered_content: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_item_quantity_positive"),
        Index("idx_order_items_order_id", "order_id"),
    )


class WalletLedgerEntry(Base):
    """
    ORM model for wallet_ledger_entries table.

    Append-only ledger of signed balance movements. The idempotency key makes
    re-applying the same order credit or withdrawal movement a no-op.
    """

    __tablename__ = "wallet_ledger_entries"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    reseller_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("resellers.id", ondelete="CASCADE"), nullable=False
    )

    entry_type: Mapped[LedgerEntryType] = mapped_column(
        _str_enum(LedgerEntryType, "ledger_entry_type"), nullable=False
    )
    amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_before_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)

    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    order_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    withdrawal_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str] = mapped_column(String, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("amount_minor <> 0", name="ck_ledger_amount_non_zero"),
        CheckConstraint(
            "balance_after_minor = balance_before_minor + amount_minor",
            name="ck_ledger_balance_consistency",
        ),
        CheckConstraint("balance_after_minor >= 0", name="ck_ledger_balance_non_negative"),
        UniqueConstraint("reseller_id", "idempotency_key", name="uq_ledger_idempotency"),
        Index("idx_ledger_reseller_created_at", "reseller_id", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<WalletLedgerEntry(reseller_id={self.reseller_id}, type={self.entry_type}, "
            f"amount={self.amount_minor}, balance_after={self.balance_after_minor})>"
        )


class WithdrawalRequest(Base):
    """ORM model for withdrawal_requests table."""

    __tablename__ = "withdrawal_requests"

    id: Mapped[int] = mapped_column(Integer, Identity(), primary_key=True)
    reseller_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("resellers.id", ondelete="CASCADE"), nullable=False
    )

    amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    net_amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)

    pix_key: Mapped[str] = mapped_column(String(255), nullable=False)
    pix_key_type: Mapped[str] = mapped_column(String(20), nullable=False)
    pix_holder_name: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[WithdrawalStatus] = mapped_column(
        _str_enum(WithdrawalStatus, "withdrawal_status"),
        nullable=False,
        default=WithdrawalStatus.PENDING,
    )
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("amount_minor > 0", name="ck_withdrawal_amount_positive"),
        CheckConstraint(
            "net_amount_minor = amount_minor - fee_minor", name="ck_withdrawal_net_consistency"
        ),
        CheckConstraint("net_amount_minor > 0", name="ck_withdrawal_net_positive"),
        Index("idx_withdrawals_reseller_id", "reseller_id"),
        Index("idx_withdrawals_status", "status"),
    )


class ResellerWebhook(Base):
    """ORM model for reseller_webhooks table (outbound purchase events)."""

    __tablename__ = "reseller_webhooks"

    id: Mapped[int] = mapped_column(Integer, Identity(), primary_key=True)
    reseller_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("resellers.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    secret: Mapped[str] = mapped_column(String(128), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (Index("idx_reseller_webhooks_reseller_id", "reseller_id"),)
