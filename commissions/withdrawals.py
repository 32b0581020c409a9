# commissions/withdrawals.py
from decimal import Decimal, InvalidOperation
import logging
from typing import Optional

from flask import current_app, has_app_context

from extensions import db
from models import User, Transaction, TransactionType
from commissions.config import CommissionConfigHelper
from commissions.errors import InsufficientBalanceError, NotFoundError, ValidationError
from commissions.ledger import LedgerHelper, ledger_unit_of_work
from commissions.notifications import Notification, NotificationDispatcher


logger = logging.getLogger(__name__)


# ==========================================================
#                  CONFIGURATION
# ==========================================================
class WithdrawalConfig:
    MIN_WITHDRAWAL = Decimal("10.00")

    @staticmethod
    def min_withdrawal() -> Decimal:
        if has_app_context():
            return Decimal(str(current_app.config.get("MIN_WITHDRAWAL", WithdrawalConfig.MIN_WITHDRAWAL)))
        return WithdrawalConfig.MIN_WITHDRAWAL


def mask_account(account_number: str) -> str:
    account_number = account_number.strip()
    if len(account_number) <= 4:
        return account_number
    return "****" + account_number[-4:]


# ==========================================================
#                  WITHDRAWAL VALIDATOR
# ==========================================================
class WithdrawalValidator:

    @staticmethod
    def parse_amount(amount) -> Decimal:
        try:
            amount_dec = Decimal(str(amount))
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError("Invalid amount format")

        if not amount_dec.is_finite() or amount_dec <= 0:
            raise ValidationError("Amount must be positive")

        minimum = WithdrawalConfig.min_withdrawal()
        if amount_dec < minimum:
            raise ValidationError(f"Minimum withdrawal is {minimum:.2f}")

        return CommissionConfigHelper.round_amount(amount_dec)

    @staticmethod
    def validate_destination(payment_method: Optional[str], account_number: Optional[str]):
        if not payment_method or not str(payment_method).strip():
            raise ValidationError("Payment method is required")
        if not account_number or not str(account_number).strip():
            raise ValidationError("Account number is required")


# ==========================================================
#                  WITHDRAWAL WORKFLOW
# ==========================================================
class WithdrawalWorkflow:
    """
    A withdrawal is a negative WITHDRAWAL ledger entry. The user row is locked
    for the duration of the balance check so two requests cannot both spend it.
    """

    @staticmethod
    def request_withdrawal(user_id: int, amount, payment_method: str, account_number: str, sink=None) -> Transaction:
        amount_dec = WithdrawalValidator.parse_amount(amount)
        WithdrawalValidator.validate_destination(payment_method, account_number)
        payment_method = str(payment_method).strip()
        account_number = str(account_number).strip()

        with ledger_unit_of_work(f"withdrawal of {amount_dec} by user {user_id}"):
            user = db.session.get(User, user_id, with_for_update=True)
            if user is None:
                raise NotFoundError("User not found")

            balance = LedgerHelper.get_balance(user.id)
            if amount_dec > balance:
                logger.warning(f"Withdrawal rejected for user {user.id}: {amount_dec} > balance {balance}")
                raise InsufficientBalanceError("Insufficient balance")

            transaction = LedgerHelper.post_transaction(
                user_id=user.id,
                tx_type=TransactionType.WITHDRAWAL,
                amount=-amount_dec,
                description=f"Withdrawal via {payment_method} to {mask_account(account_number)}",
            )

        logger.info(f"Withdrawal TXN#{transaction.id}: user {user.id} - {amount_dec} via {payment_method}")

        NotificationDispatcher.dispatch([Notification(
            user_id=user.id,
            message=f"Your withdrawal of ${amount_dec:.2f} via {payment_method} is being processed.",
            amount=amount_dec,
            kind="info",
            title="Withdrawal Requested",
        )], sink)
        return transaction
