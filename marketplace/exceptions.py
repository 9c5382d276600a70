"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""


class MarketplaceError(Exception):
    """Base exception for all marketplace errors."""

    pass


class OutOfStockError(MarketplaceError):
    """Raised when a product has fewer stock lines than an order requires."""

    def __init__(self, product_id: int, product_name: str, available: int, required: int) -> None:
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.required = required
        super().__init__(f'Produto "{product_name}" está esgotado')


class OrderNotFoundError(MarketplaceError):
    """Raised when an order doesn't exist."""

    def __init__(self, order_id: int) -> None:
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class ProductNotFoundError(MarketplaceError):
    """Raised when a product doesn't exist."""

    def __init__(self, product_id: int) -> None:
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class ResellerNotFoundError(MarketplaceError):
    """Raised when a reseller doesn't exist."""

    def __init__(self, reseller_id: int) -> None:
        self.reseller_id = reseller_id
        super().__init__(f"Reseller not found: {reseller_id}")


class WithdrawalNotFoundError(MarketplaceError):
    """Raised when a withdrawal request doesn't exist."""

    def __init__(self, withdrawal_id: int) -> None:
        self.withdrawal_id = withdrawal_id
        super().__init__(f"Withdrawal request not found: {withdrawal_id}")


class OrderNotPaidError(MarketplaceError):
    """Raised when an operation needs a paid order."""

    def __init__(self, order_id: int) -> None:
        self.order_id = order_id
        super().__init__(f"Order {order_id} has not been paid")


class CheckoutError(MarketplaceError):
    """Raised when a checkout request cannot become an order."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InsufficientBalanceError(MarketplaceError):
    """Raised when a wallet balance cannot cover a debit."""

    def __init__(self, balance: int, required: int) -> None:
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient balance. Balance: {balance}, Required: {required}")


class InvalidWithdrawalError(MarketplaceError):
    """Raised when a withdrawal request violates amount rules."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid withdrawal: {message}")


class WithdrawalAlreadyProcessedError(MarketplaceError):
    """Raised when deciding a withdrawal that is no longer pending."""

    def __init__(self, withdrawal_id: int, status: str) -> None:
        self.withdrawal_id = withdrawal_id
        self.status = status
        super().__init__(f"Withdrawal {withdrawal_id} already {status}")


class WriteVerificationError(MarketplaceError):
    """Raised when database write verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Write verification failed: {message}")


class DataIntegrityError(MarketplaceError):
    """Raised when data integrity constraint violated."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Data integrity error: {message}")


class PaymentProviderError(MarketplaceError):
    """Raised when payment provider operation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Payment provider error: {message}")


class WebhookVerificationError(MarketplaceError):
    """Raised when webhook verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Webhook verification error: {message}")


class AuthenticationError(MarketplaceError):
    """Raised when authentication fails (bad credentials, expired session)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class AuthorizationError(MarketplaceError):
    """Raised when the caller may not act on a resource."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authorization failed: {message}")
