# commissions/cascade.py
"""
Commission Cascade Engine - the only writer of commission-type transactions.

Two entry points:
    distribute_activation_commission  multi-tier walk (up to 3 levels) on role activation
    distribute_order_commission       single AFFILIATOR credit on a product purchase

Neither commits. Both run inside the caller's unit of work and return the
notifications to deliver once that unit has committed.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from models import User, Product, Order, Transaction, TransactionType, UserRole
from commissions.config import CommissionConfigHelper
from commissions.ledger import LedgerHelper
from commissions.notifications import Notification
from commissions.referral_tree import ReferralTreeHelper, is_commission_eligible


logger = logging.getLogger(__name__)


@dataclass
class CascadeResult:
    transactions: List[Transaction] = field(default_factory=list)
    notifications: List[Notification] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return sum((Decimal(str(tx.amount)) for tx in self.transactions), Decimal('0'))

    def extend(self, other: "CascadeResult"):
        self.transactions.extend(other.transactions)
        self.notifications.extend(other.notifications)


class CommissionCascadeEngine:

    @staticmethod
    def distribute_activation_commission(activating_user: User, fee_amount, new_role) -> CascadeResult:
        """
        Post REFERRAL_COMMISSION entries up the activating user's eligible upline.

        Level i (1-based) receives fee * rate[i]; an ineligible ancestor truncates
        the chain. A user with no referrer produces an empty result.
        """
        result = CascadeResult()
        role = new_role.value if isinstance(new_role, UserRole) else str(new_role)

        if activating_user.referred_by is None:
            logger.info(f"User {activating_user.id} has no referrer; no activation commission")
            return result

        fee = Decimal(str(fee_amount))
        max_level = CommissionConfigHelper.max_level()
        upline = ReferralTreeHelper.resolve_upline_chain(
            activating_user.id, max_level, is_commission_eligible
        )

        for level, ancestor_id in enumerate(upline, start=1):
            rate = CommissionConfigHelper.get_rate(level)
            amount = CommissionConfigHelper.round_amount(fee * rate)

            transaction = LedgerHelper.post_transaction(
                user_id=ancestor_id,
                tx_type=TransactionType.REFERRAL_COMMISSION,
                amount=amount,
                description=f"Level {level} commission for {role} activation by {activating_user.username}",
                related_user_id=activating_user.id,
            )
            result.transactions.append(transaction)
            result.notifications.append(Notification(
                user_id=ancestor_id,
                message=(
                    f"You received ${amount:.2f} commission from {activating_user.username} "
                    f"upgrading to {role}!"
                ),
                amount=amount,
                kind="success",
                title="Commission Received",
                transaction=transaction.to_dict(),
            ))

            logger.info(
                f"Level {level} activation commission: User {ancestor_id} - {amount} "
                f"({rate * 100:g}% of {fee}) from user {activating_user.id}"
            )

        if not upline:
            logger.info(f"No eligible upline for user {activating_user.id}; no activation commission")

        return result

    @staticmethod
    def distribute_order_commission(order: Order, product: Product) -> CascadeResult:
        """
        Credit the AFFILIATOR who owns `order.referral_code` with
        order.amount * product.commission / 100. Single level, never cascades.
        """
        result = CascadeResult()

        code = (order.referral_code or "").strip()
        if not code:
            return result

        affiliate: Optional[User] = ReferralTreeHelper.find_by_referral_code(code)
        if affiliate is None:
            logger.info(f"Order {order.id}: referral code {code} matches no user; no commission")
            return result

        if affiliate.role != UserRole.AFFILIATOR.value:
            logger.info(
                f"Order {order.id}: referral code owner {affiliate.id} is {affiliate.role}, "
                f"not AFFILIATOR; no commission"
            )
            return result

        percent = Decimal(str(product.commission or 0))
        amount = CommissionConfigHelper.round_amount(
            Decimal(str(order.amount)) * percent / Decimal('100')
        )

        transaction = LedgerHelper.post_transaction(
            user_id=affiliate.id,
            tx_type=TransactionType.PRODUCT_COMMISSION,
            amount=amount,
            description=f"Commission for product {product.name}",
            related_order_id=order.id,
        )
        result.transactions.append(transaction)
        result.notifications.append(Notification(
            user_id=affiliate.id,
            message=f"You received ${amount:.2f} commission for a sale of {product.name}!",
            amount=amount,
            kind="success",
            title="Product Commission",
            transaction=transaction.to_dict(),
        ))

        logger.info(f"Product commission: User {affiliate.id} - {amount} ({percent}% of order {order.id})")
        return result
