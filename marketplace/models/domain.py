"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass

from marketplace.models.api import FulfillmentSource, OrderStatus


@dataclass(frozen=True)
class AllocationResult:
    """Outcome of taking lines from the head of a stock queue."""

    delivered: tuple[str, ...]
    remaining_stock_text: str
    shortfall: int

    def __post_init__(self) -> None:
        """Validate allocation invariants."""
        if self.shortfall < 0:
            raise ValueError(f"Shortfall cannot be negative: {self.shortfall}")
        if self.shortfall > 0 and self.delivered:
            raise ValueError("A short allocation cannot deliver any lines")

    @property
    def ok(self) -> bool:
        """Whether the whole requested quantity was available."""
        return self.shortfall == 0


@dataclass(frozen=True)
class WebhookTarget:
    """A reseller endpoint subscribed to purchase events."""

    webhook_id: int
    url: str
    secret: str


@dataclass(frozen=True)
class DeliveryNotice:
    """Everything the notification side needs about a freshly paid order."""

    order_id: int
    email: str
    whatsapp: str | None
    product_names: tuple[str, ...]
    delivered_content: str
    store_name: str
    reseller_id: int | None
    total_amount_minor: int
    webhook_targets: tuple[WebhookTarget, ...] = ()


@dataclass(frozen=True)
class FulfillmentResult:
    """Result of one fulfillment call."""

    order_id: int
    status: OrderStatus
    delivered_content: str
    replayed: bool
    source: FulfillmentSource
    notice: DeliveryNotice | None = None

    def __post_init__(self) -> None:
        """Paid orders always carry their delivery."""
        if self.status != OrderStatus.PAID:
            raise ValueError(f"Fulfillment must end paid, got {self.status}")


@dataclass(frozen=True)
class NotificationResult:
    """Outcome of a single notification attempt."""

    success: bool
    error: str | None = None
    message_id: str | None = None


@dataclass(frozen=True)
class SweepResult:
    """Counters for one background sweep run."""

    examined: int
    succeeded: int
    failed: int


@dataclass(frozen=True)
class WalletCredit:
    """A ledger credit for a paid order, applied or found already applied."""

    reseller_id: int
    order_id: int
    amount_minor: int
    balance_after_minor: int
    already_applied: bool


@dataclass(frozen=True)
class WebhookOutcome:
    """What the reconciler did with a verified webhook."""

    outcome: str  # fulfilled, replayed, ignored, unmatched, unknown_order, out_of_stock
    order_id: int | None = None
