# commissions/services.py
from decimal import Decimal
import logging
from typing import Any, Dict, List, Optional

from extensions import db
from models import User, Product, Order, Transaction, TransactionType, UserRole
from commissions.activation import RoleActivationWorkflow
from commissions.config import CommissionConfigHelper
from commissions.errors import NotFoundError
from commissions.ledger import LedgerHelper
from commissions.purchase import PurchaseWorkflow
from commissions.referral_tree import ReferralTreeHelper
from commissions.withdrawals import WithdrawalWorkflow

logger = logging.getLogger(__name__)


class CommissionService:
    """
    Main service for commission operations.
    Simple interface for the blueprints and CLI commands.
    """

    @staticmethod
    def activate_role(user_id: int, target_role, referral_code_hint: Optional[str] = None, sink=None) -> User:
        return RoleActivationWorkflow.activate_role(user_id, target_role, referral_code_hint, sink=sink)

    @staticmethod
    def purchase_product(buyer_id: int, product_id: int, referral_code: Optional[str] = None, sink=None) -> Order:
        return PurchaseWorkflow.purchase_product(buyer_id, product_id, referral_code, sink=sink)

    @staticmethod
    def request_withdrawal(user_id: int, amount, payment_method: str, account_number: str, sink=None) -> Transaction:
        return WithdrawalWorkflow.request_withdrawal(user_id, amount, payment_method, account_number, sink=sink)

    @staticmethod
    def get_ledger(user_id: int) -> List[Transaction]:
        return LedgerHelper.get_ledger(user_id)

    @staticmethod
    def get_upline(user_id: int, max_depth: Optional[int] = None) -> List[User]:
        if db.session.get(User, user_id) is None:
            raise NotFoundError("User not found")
        return ReferralTreeHelper.get_upline(user_id, max_depth)

    @staticmethod
    def get_referrals(user_id: int) -> List[User]:
        return ReferralTreeHelper.get_direct_referrals(user_id)

    @staticmethod
    def get_earnings_summary(user_id: int) -> Dict[str, Any]:
        """Balance and per-type totals, all derived from the ledger."""
        by_type = LedgerHelper.totals_by_type(user_id)
        zero = Decimal('0.00')
        return {
            'balance': float(LedgerHelper.get_balance(user_id)),
            'totalEarned': float(LedgerHelper.total_earned(user_id)),
            'referralCommission': float(by_type.get(TransactionType.REFERRAL_COMMISSION.value, zero)),
            'productCommission': float(by_type.get(TransactionType.PRODUCT_COMMISSION.value, zero)),
            'activationFees': float(by_type.get(TransactionType.ACTIVATION_FEE.value, zero)),
            'withdrawals': float(by_type.get(TransactionType.WITHDRAWAL.value, zero)),
            'directReferrals': ReferralTreeHelper.count_direct_referrals(user_id),
        }

    @staticmethod
    def get_admin_stats() -> Dict[str, Any]:
        role_counts = dict(
            db.session.query(User.role, db.func.count(User.id)).group_by(User.role).all()
        )
        return {
            'totalUsers': sum(role_counts.values()),
            'usersByRole': {role.value: role_counts.get(role.value, 0) for role in UserRole},
            'totalProducts': Product.query.count(),
            'totalOrders': Order.query.count(),
            'salesVolume': float(CommissionConfigHelper.round_amount(
                db.session.query(db.func.coalesce(db.func.sum(Order.amount), 0)).scalar()
            )),
            'totalTransactions': Transaction.query.count(),
            'activationFeesCollected': float(-LedgerHelper.sum_by_type(TransactionType.ACTIVATION_FEE)),
            'referralCommissionsPaid': float(LedgerHelper.sum_by_type(TransactionType.REFERRAL_COMMISSION)),
            'productCommissionsPaid': float(LedgerHelper.sum_by_type(TransactionType.PRODUCT_COMMISSION)),
            'withdrawalsRequested': float(-LedgerHelper.sum_by_type(TransactionType.WITHDRAWAL)),
            'commissionStructure': CommissionConfigHelper.get_commission_structure(),
            'referralCycles': CommissionService.detect_referral_cycles(),
        }

    @staticmethod
    def detect_referral_cycles() -> List[List[int]]:
        """
        Find circular chains in the referral forest. Writes reject cycles, so any
        hit here means the table was edited outside the application.
        """
        parents = dict(db.session.query(User.id, User.referred_by).all())
        cycles = []
        seen_in_cycle = set()
        finished = set()

        for start in parents:
            path = []
            on_path = {}
            current = start
            while current is not None and current not in finished and current in parents:
                if current in on_path:
                    cycle = path[on_path[current]:]
                    if not seen_in_cycle.intersection(cycle):
                        cycles.append(cycle)
                        seen_in_cycle.update(cycle)
                    break
                on_path[current] = len(path)
                path.append(current)
                current = parents[current]
            finished.update(path)

        if cycles:
            logger.error(f"Referral cycles detected: {cycles}")
        return cycles
