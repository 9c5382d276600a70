"""
Tests for exception classes.

Covers the typed attributes and messages the API layer relies on.
"""

import pytest

from marketplace.exceptions import (
    AuthenticationError,
    AuthorizationError,
    CheckoutError,
    DataIntegrityError,
    InsufficientBalanceError,
    InvalidWithdrawalError,
    MarketplaceError,
    OrderNotFoundError,
    OrderNotPaidError,
    OutOfStockError,
    PaymentProviderError,
    ProductNotFoundError,
    ResellerNotFoundError,
    WebhookVerificationError,
    WithdrawalAlreadyProcessedError,
    WithdrawalNotFoundError,
    WriteVerificationError,
)


class TestMarketplaceError:
    """Tests for the base exception."""

    def test_is_exception(self) -> None:
        assert issubclass(MarketplaceError, Exception)

    @pytest.mark.parametrize(
        "exc",
        [
            OutOfStockError(1, "Netflix", 0, 1),
            OrderNotFoundError(1),
            ProductNotFoundError(1),
            ResellerNotFoundError(1),
            WithdrawalNotFoundError(1),
            OrderNotPaidError(1),
            CheckoutError("x"),
            InsufficientBalanceError(0, 1),
            InvalidWithdrawalError("x"),
            WithdrawalAlreadyProcessedError(1, "approved"),
            WriteVerificationError("x"),
            DataIntegrityError("x"),
            PaymentProviderError("x"),
            WebhookVerificationError("x"),
            AuthenticationError("x"),
            AuthorizationError("x"),
        ],
    )
    def test_all_subclass_base(self, exc: MarketplaceError) -> None:
        with pytest.raises(MarketplaceError):
            raise exc


class TestOutOfStockError:
    """Tests for OutOfStockError."""

    def test_attributes(self) -> None:
        exc = OutOfStockError(product_id=9, product_name="Disney+", available=1, required=2)

        assert exc.product_id == 9
        assert exc.available == 1
        assert exc.required == 2

    def test_message_names_product(self) -> None:
        assert str(OutOfStockError(9, "Disney+", 0, 1)) == 'Produto "Disney+" está esgotado'


class TestNotFoundErrors:
    """Tests for the lookup errors."""

    def test_order(self) -> None:
        exc = OrderNotFoundError(42)
        assert exc.order_id == 42
        assert "42" in str(exc)

    def test_withdrawal(self) -> None:
        exc = WithdrawalNotFoundError(7)
        assert exc.withdrawal_id == 7
        assert str(exc) == "Withdrawal request not found: 7"

    def test_order_not_paid(self) -> None:
        assert str(OrderNotPaidError(3)) == "Order 3 has not been paid"


class TestWalletErrors:
    """Tests for wallet errors."""

    def test_insufficient_balance(self) -> None:
        exc = InsufficientBalanceError(balance=400, required=500)

        assert exc.balance == 400
        assert exc.required == 500
        assert "400" in str(exc)

    def test_invalid_withdrawal_keeps_message(self) -> None:
        exc = InvalidWithdrawalError("below minimum")

        assert exc.message == "below minimum"
        assert str(exc) == "Invalid withdrawal: below minimum"

    def test_already_processed(self) -> None:
        exc = WithdrawalAlreadyProcessedError(5, "rejected")

        assert exc.status == "rejected"
        assert str(exc) == "Withdrawal 5 already rejected"


class TestMessagePrefixes:
    """Errors carrying a message keep it separate from the rendered text."""

    @pytest.mark.parametrize(
        "cls,prefix",
        [
            (DataIntegrityError, "Data integrity error: "),
            (PaymentProviderError, "Payment provider error: "),
            (WebhookVerificationError, "Webhook verification error: "),
            (AuthenticationError, "Authentication failed: "),
            (AuthorizationError, "Authorization failed: "),
            (WriteVerificationError, "Write verification failed: "),
        ],
    )
    def test_prefix(self, cls, prefix: str) -> None:
        exc = cls("details")

        assert exc.message == "details"
        assert str(exc) == f"{prefix}details"

    def test_checkout_error_is_plain(self) -> None:
        assert str(CheckoutError("Produto não encontrado")) == "Produto não encontrado"
