# commissions/referral_tree.py
import logging
import secrets
import string
from typing import Callable, List, Optional, Tuple

from extensions import db
from models import User
from commissions.config import CommissionConfigHelper


logger = logging.getLogger(__name__)

REFERRAL_CODE_LENGTH = 8


def is_commission_eligible(user: User) -> bool:
    """Default cascade eligibility: ancestor holds ACTIVE_USER or AFFILIATOR."""
    return CommissionConfigHelper.is_eligible_role(user.role)


class ReferralTreeHelper:
    """
    Upward-only, bounded-depth access to the referral forest.
    The tree is stored as a parent pointer (`users.referred_by`); no closure table.
    """

    @staticmethod
    def get_user(user_id: Optional[int]) -> Optional[User]:
        if user_id is None:
            return None
        return db.session.get(User, user_id)

    @staticmethod
    def resolve_upline_chain(
            user_id: int,
            max_depth: Optional[int] = None,
            eligibility_predicate: Callable[[User], bool] = is_commission_eligible
    ) -> List[int]:
        """
        Walk `referred_by` upward starting from the user's direct referrer.

        Returns ancestor ids nearest first. Stops at the first ancestor that fails
        `eligibility_predicate` (it blocks everyone above it), after `max_depth`
        ancestors, or where the chain ends. Never raises for a broken chain.
        """
        if max_depth is None:
            max_depth = CommissionConfigHelper.max_level()

        chain = []
        user = ReferralTreeHelper.get_user(user_id)
        if user is None or max_depth <= 0:
            return chain

        visited = {user.id}
        current_id = user.referred_by

        while current_id is not None and len(chain) < max_depth:
            if current_id in visited:
                logger.error(f"Cycle detected in referral chain of user {user_id} at {current_id}")
                break
            visited.add(current_id)

            ancestor = ReferralTreeHelper.get_user(current_id)
            if ancestor is None:
                logger.warning(f"Broken referral chain: user {current_id} not found (start={user_id})")
                break

            if not eligibility_predicate(ancestor):
                logger.info(
                    f"Upline of user {user_id} truncated at level {len(chain) + 1}: "
                    f"user {ancestor.id} has role {ancestor.role}"
                )
                break

            chain.append(ancestor.id)
            current_id = ancestor.referred_by

        return chain

    @staticmethod
    def get_upline(user_id: int, max_depth: Optional[int] = None) -> List[User]:
        """Ancestors nearest first, regardless of role."""
        ids = ReferralTreeHelper.resolve_upline_chain(
            user_id, max_depth, eligibility_predicate=lambda ancestor: True
        )
        return [db.session.get(User, ancestor_id) for ancestor_id in ids]

    @staticmethod
    def get_direct_referrals(user_id: int) -> List[User]:
        return (User.query
                .filter(User.referred_by == user_id)
                .order_by(User.created_at.desc(), User.id.desc())
                .all())

    @staticmethod
    def count_direct_referrals(user_id: int) -> int:
        return User.query.filter(User.referred_by == user_id).count()

    @staticmethod
    def is_ancestor(ancestor_id: int, descendant_id: int, max_depth: int = 10000) -> bool:
        """True if `ancestor_id` is reachable by following referred_by up from `descendant_id`."""
        visited = set()
        current = ReferralTreeHelper.get_user(descendant_id)
        depth = 0
        while current is not None and current.referred_by is not None and depth < max_depth:
            if current.referred_by == ancestor_id:
                return True
            if current.id in visited:
                return False
            visited.add(current.id)
            current = ReferralTreeHelper.get_user(current.referred_by)
            depth += 1
        return False

    @staticmethod
    def validate_referrer(referrer: Optional[User], user: User) -> Tuple[bool, str]:
        """
        Validate if `referrer` can become the direct upline of `user`
        Returns: (is_valid, error_message)
        """
        if referrer is None:
            return False, "Referrer does not exist"

        if user.id is not None and referrer.id == user.id:
            return False, "Cannot use your own referral code"

        if user.id is not None and ReferralTreeHelper.is_ancestor(user.id, referrer.id):
            return False, "Circular referral detected"

        return True, "Valid referrer"

    @staticmethod
    def find_by_referral_code(code: Optional[str]) -> Optional[User]:
        if not code or not code.strip():
            return None
        return User.query.filter_by(referral_code=code.strip().upper()).first()

    @staticmethod
    def generate_referral_code(length: int = REFERRAL_CODE_LENGTH) -> str:
        chars = string.ascii_uppercase + string.digits
        for _ in range(10):
            code = ''.join(secrets.choice(chars) for _ in range(length))
            if not User.query.filter_by(referral_code=code).first():
                return code
        # fallback: longer code, collision practically impossible
        return ''.join(secrets.choice(chars) for _ in range(length + 4))
