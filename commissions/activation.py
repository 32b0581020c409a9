# commissions/activation.py
import logging
from typing import Optional

from sqlalchemy import update

from extensions import db
from models import User, UserRole, TransactionType, ROLE_TIERS
from commissions.cascade import CommissionCascadeEngine
from commissions.config import CommissionConfigHelper
from commissions.errors import InvalidRoleError, InvalidTransitionError, NotFoundError
from commissions.ledger import LedgerHelper, ledger_unit_of_work
from commissions.notifications import NotificationDispatcher
from commissions.referral_tree import ReferralTreeHelper


logger = logging.getLogger(__name__)

# Roles reachable through a paid activation
ACTIVATABLE_ROLES = (UserRole.ACTIVE_USER, UserRole.AFFILIATOR)


class RoleActivationWorkflow:
    """
    USER -> ACTIVE_USER -> AFFILIATOR, paid and monotonic.

    One atomic unit: charge ACTIVATION_FEE, check-and-set the role, run the
    activation cascade. Notifications go out only after the commit.
    """

    @staticmethod
    def parse_target_role(target_role) -> UserRole:
        role = UserRole.parse(target_role)
        if role not in ACTIVATABLE_ROLES:
            raise InvalidRoleError("Invalid role")
        return role

    @staticmethod
    def check_transition(current_role: str, target: UserRole):
        """Raise InvalidTransitionError unless current_role may upgrade to target."""
        current = UserRole.parse(current_role)
        if current not in ROLE_TIERS or ROLE_TIERS[target] <= ROLE_TIERS[current]:
            raise InvalidTransitionError("User already has this role or higher")

    @staticmethod
    def _bind_referrer_hint(user: User, referral_code_hint: Optional[str]):
        """Attach a referrer from the hint when the user has none yet."""
        if user.referred_by is not None or not referral_code_hint:
            return

        referrer = ReferralTreeHelper.find_by_referral_code(referral_code_hint)
        is_valid, message = ReferralTreeHelper.validate_referrer(referrer, user)
        if not is_valid:
            logger.info(f"Ignoring referral hint {referral_code_hint!r} for user {user.id}: {message}")
            return

        user.referred_by = referrer.id
        logger.info(f"User {user.id} bound to referrer {referrer.id} via activation hint")

    @staticmethod
    def activate_role(user_id: int, target_role, referral_code_hint: Optional[str] = None, sink=None) -> User:
        target = RoleActivationWorkflow.parse_target_role(target_role)
        fee = CommissionConfigHelper.activation_fee(target.value)

        with ledger_unit_of_work(f"activation of user {user_id} to {target.value}"):
            user = db.session.get(User, user_id, with_for_update=True)
            if user is None:
                raise NotFoundError("User not found")

            current_role = user.role
            try:
                RoleActivationWorkflow.check_transition(current_role, target)
            except InvalidTransitionError:
                logger.warning(f"Rejected activation of user {user_id}: {current_role} -> {target.value}")
                raise

            RoleActivationWorkflow._bind_referrer_hint(user, referral_code_hint)

            LedgerHelper.post_transaction(
                user_id=user.id,
                tx_type=TransactionType.ACTIVATION_FEE,
                amount=-fee,
                description=f"Activation fee for {target.value} role",
            )

            # Check-and-set on the role column: a concurrent activation that got
            # here first leaves zero matching rows.
            updated = db.session.execute(
                update(User)
                .where(User.id == user.id, User.role == current_role)
                .values(role=target.value)
            ).rowcount
            if updated != 1:
                raise InvalidTransitionError("User already has this role or higher")

            db.session.refresh(user)
            result = CommissionCascadeEngine.distribute_activation_commission(user, fee, target)

        logger.info(
            f"User {user.id} activated {current_role} -> {target.value}: fee {fee}, "
            f"{len(result.transactions)} commissions totalling {result.total}"
        )

        NotificationDispatcher.dispatch(result.notifications, sink)
        return user
