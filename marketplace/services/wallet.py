"""
Wallet Service - Reseller balances backed by an append-only ledger.

Every balance movement is a WalletLedgerEntry written while the reseller row
is locked, with the cached wallet_balance_minor updated in the same flush.
Idempotency keys make order credits and withdrawal movements safe to retry.

NO DICTIONARIES - All operations use strongly typed domain models.
"""

from datetime import UTC, datetime

from marketplace.config import settings
from marketplace.db.models import Order, Reseller, WalletLedgerEntry, WithdrawalRequest
from marketplace.exceptions import (
    DataIntegrityError,
    InsufficientBalanceError,
    InvalidWithdrawalError,
    ResellerNotFoundError,
    WithdrawalAlreadyProcessedError,
    WithdrawalNotFoundError,
    WriteVerificationError,
)
from marketplace.models.api import LedgerEntryType, WithdrawalStatus
from marketplace.models.domain import WalletCredit
from marketplace.observability import get_logger, metrics
from marketplace.services.stores import WalletStore

logger = get_logger(__name__)


def order_credit_key(order_id: int) -> str:
    return f"order:{order_id}"


def withdrawal_debit_key(withdrawal_id: int) -> str:
    return f"withdrawal:{withdrawal_id}"


def withdrawal_reversal_key(withdrawal_id: int) -> str:
    return f"withdrawal:{withdrawal_id}:reversal"


class WalletService:
    """
    Wallet operations over a WalletStore.

    credit_order() joins the caller's transaction; withdrawal operations
    commit their own.
    """

    def __init__(self, store: WalletStore) -> None:
        self.store = store

    async def credit_order(self, order: Order) -> WalletCredit | None:
        """
        Credit the selling reseller with the order total, once per order.

        Returns None when the order has no resolvable reseller. The caller owns
        the transaction.
        """
        if order.reseller_id is None:
            logger.warning("wallet_credit_skipped_no_reseller", order_id=order.id)
            return None

        reseller = await self.store.lock_reseller(order.reseller_id)
        if reseller is None:
            logger.warning(
                "wallet_credit_skipped_reseller_missing",
                order_id=order.id,
                reseller_id=order.reseller_id,
            )
            return None

        key = order_credit_key(order.id)
        existing = await self.store.find_ledger_entry(reseller.id, key)
        if existing is not None:
            logger.info(
                "wallet_credit_already_applied",
                order_id=order.id,
                reseller_id=reseller.id,
                entry_id=str(existing.id),
            )
            return WalletCredit(
                reseller_id=reseller.id,
                order_id=order.id,
                amount_minor=existing.amount_minor,
                balance_after_minor=reseller.wallet_balance_minor,
                already_applied=True,
            )

        if order.total_amount_minor <= 0:
            logger.info("wallet_credit_skipped_zero_total", order_id=order.id)
            return None

        entry = await self._append_entry(
            reseller,
            entry_type=LedgerEntryType.ORDER_CREDIT,
            amount_minor=order.total_amount_minor,
            idempotency_key=key,
            description=f"Venda pedido #{order.id}",
            order_id=order.id,
        )
        reseller.total_sales_minor += order.total_amount_minor

        logger.info(
            "wallet_credited",
            order_id=order.id,
            reseller_id=reseller.id,
            amount_minor=order.total_amount_minor,
            balance_after=entry.balance_after_minor,
        )
        return WalletCredit(
            reseller_id=reseller.id,
            order_id=order.id,
            amount_minor=entry.amount_minor,
            balance_after_minor=entry.balance_after_minor,
            already_applied=False,
        )

    async def request_withdrawal(
        self,
        reseller_id: int,
        amount_minor: int,
        pix_key: str,
        pix_key_type: str,
        pix_holder_name: str,
    ) -> WithdrawalRequest:
        """
        Create a withdrawal request and reserve its amount from the balance.

        Raises:
            InvalidWithdrawalError: Amount below minimum or fee leaves nothing
            InsufficientBalanceError: Balance cannot cover the amount
            ResellerNotFoundError: Reseller doesn't exist
        """
        fee_minor = settings.withdrawal_fee_minor
        if amount_minor < settings.withdrawal_min_minor:
            raise InvalidWithdrawalError(
                f"minimum is {settings.withdrawal_min_minor}, got {amount_minor}"
            )
        net_amount_minor = amount_minor - fee_minor
        if net_amount_minor <= 0:
            raise InvalidWithdrawalError("amount does not cover the withdrawal fee")

        reseller = await self.store.lock_reseller(reseller_id)
        if reseller is None:
            raise ResellerNotFoundError(reseller_id)
        if reseller.wallet_balance_minor < amount_minor:
            raise InsufficientBalanceError(reseller.wallet_balance_minor, amount_minor)

        withdrawal = WithdrawalRequest(
            reseller_id=reseller.id,
            amount_minor=amount_minor,
            fee_minor=fee_minor,
            net_amount_minor=net_amount_minor,
            pix_key=pix_key,
            pix_key_type=pix_key_type,
            pix_holder_name=pix_holder_name,
            status=WithdrawalStatus.PENDING,
        )
        await self.store.add_withdrawal(withdrawal)

        await self._append_entry(
            reseller,
            entry_type=LedgerEntryType.WITHDRAWAL_DEBIT,
            amount_minor=-amount_minor,
            idempotency_key=withdrawal_debit_key(withdrawal.id),
            description=f"Saque #{withdrawal.id}",
            withdrawal_id=withdrawal.id,
        )
        await self.store.commit()

        logger.info(
            "withdrawal_requested",
            withdrawal_id=withdrawal.id,
            reseller_id=reseller.id,
            amount_minor=amount_minor,
            net_amount_minor=net_amount_minor,
        )
        return withdrawal

    async def decide_withdrawal(
        self, withdrawal_id: int, approve: bool, admin_notes: str | None = None
    ) -> WithdrawalRequest:
        """
        Approve or reject a pending withdrawal.

        Approval only records the decision, the amount was reserved at request
        time. Rejection returns the reserved amount to the wallet.

        Raises:
            WithdrawalNotFoundError: Withdrawal doesn't exist
            WithdrawalAlreadyProcessedError: Withdrawal is not pending
        """
        withdrawal = await self.store.lock_withdrawal(withdrawal_id)
        if withdrawal is None:
            raise WithdrawalNotFoundError(withdrawal_id)
        if withdrawal.status != WithdrawalStatus.PENDING:
            raise WithdrawalAlreadyProcessedError(withdrawal_id, withdrawal.status.value)

        if not approve:
            reseller = await self.store.lock_reseller(withdrawal.reseller_id)
            if reseller is None:
                raise ResellerNotFoundError(withdrawal.reseller_id)
            key = withdrawal_reversal_key(withdrawal.id)
            if await self.store.find_ledger_entry(reseller.id, key) is None:
                await self._append_entry(
                    reseller,
                    entry_type=LedgerEntryType.WITHDRAWAL_REVERSAL,
                    amount_minor=withdrawal.amount_minor,
                    idempotency_key=key,
                    description=f"Estorno saque #{withdrawal.id}",
                    withdrawal_id=withdrawal.id,
                )

        withdrawal.status = WithdrawalStatus.APPROVED if approve else WithdrawalStatus.REJECTED
        withdrawal.admin_notes = admin_notes
        withdrawal.processed_at = datetime.now(UTC)
        await self.store.commit()

        logger.info(
            "withdrawal_decided",
            withdrawal_id=withdrawal.id,
            reseller_id=withdrawal.reseller_id,
            status=withdrawal.status.value,
        )
        return withdrawal

    async def get_wallet(
        self, reseller_id: int, limit: int = 50
    ) -> tuple[Reseller, list[WalletLedgerEntry]]:
        """Return the reseller and its most recent ledger entries."""
        reseller = await self.store.get_reseller(reseller_id)
        if reseller is None:
            raise ResellerNotFoundError(reseller_id)
        entries = await self.store.list_ledger_entries(reseller_id, limit)
        return reseller, entries

    async def verify_balance(self, reseller_id: int) -> int:
        """
        Check that the cached balance equals the ledger sum.

        Raises:
            DataIntegrityError: Cached balance and ledger disagree
        """
        reseller = await self.store.get_reseller(reseller_id)
        if reseller is None:
            raise ResellerNotFoundError(reseller_id)
        ledger_total = await self.store.sum_ledger(reseller_id)
        if ledger_total != reseller.wallet_balance_minor:
            raise DataIntegrityError(
                f"Reseller {reseller_id} balance {reseller.wallet_balance_minor} "
                f"!= ledger sum {ledger_total}"
            )
        return ledger_total

    async def _append_entry(
        self,
        reseller: Reseller,
        entry_type: LedgerEntryType,
        amount_minor: int,
        idempotency_key: str,
        description: str,
        order_id: int | None = None,
        withdrawal_id: int | None = None,
    ) -> WalletLedgerEntry:
        """Write one ledger entry and move the cached balance with it."""
        balance_before = reseller.wallet_balance_minor
        balance_after = balance_before + amount_minor
        if balance_after < 0:
            raise InsufficientBalanceError(balance_before, -amount_minor)

        entry = WalletLedgerEntry(
            reseller_id=reseller.id,
            entry_type=entry_type,
            amount_minor=amount_minor,
            balance_before_minor=balance_before,
            balance_after_minor=balance_after,
            idempotency_key=idempotency_key,
            order_id=order_id,
            withdrawal_id=withdrawal_id,
            description=description,
        )
        reseller.wallet_balance_minor = balance_after
        await self.store.add_ledger_entry(entry)

        if reseller.wallet_balance_minor != entry.balance_after_minor:
            raise WriteVerificationError(
                f"Reseller {reseller.id} balance {reseller.wallet_balance_minor} "
                f"does not match ledger entry {entry.balance_after_minor}"
            )

        metrics.record_ledger_entry(entry_type.value)
        return entry
