# tests/test_activation.py
"""Role activation: transition guard, atomic unit, post-commit notifications."""
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from extensions import db
from models import User, Transaction, TransactionType, UserRole
from commissions.cascade import CommissionCascadeEngine
from commissions.errors import (
    InvalidRoleError,
    InvalidTransitionError,
    LedgerWriteError,
    NotFoundError,
)
from commissions.ledger import LedgerHelper
from commissions.services import CommissionService


def role_of(user_id):
    return db.session.get(User, user_id).role


# =============================================================================
# TEST CLASS: transition guard
# =============================================================================

class TestTransitionGuard:

    @pytest.mark.parametrize("start, target", [
        (UserRole.USER, "ACTIVE_USER"),
        (UserRole.USER, "AFFILIATOR"),
        (UserRole.ACTIVE_USER, "AFFILIATOR"),
    ])
    def test_allowed_upgrades(self, make_user, sink, start, target):
        user = make_user("u", role=start)

        CommissionService.activate_role(user.id, target, sink=sink)

        assert role_of(user.id) == target

    @pytest.mark.parametrize("start, target", [
        (UserRole.ACTIVE_USER, "ACTIVE_USER"),
        (UserRole.AFFILIATOR, "AFFILIATOR"),
        (UserRole.AFFILIATOR, "ACTIVE_USER"),
        (UserRole.ADMIN, "AFFILIATOR"),
    ])
    def test_rejected_without_side_effects(self, make_user, sink, start, target):
        """
        TEST: re-requesting a granted (or lower) role is rejected; nothing is written.
        """
        sponsor = make_user("sponsor", role=UserRole.AFFILIATOR)
        user = make_user("u", role=start, referrer=sponsor)

        with pytest.raises(InvalidTransitionError, match="already has this role or higher"):
            CommissionService.activate_role(user.id, target, sink=sink)

        assert role_of(user.id) == start.value
        assert Transaction.query.count() == 0
        assert sink.notifications == []

    @pytest.mark.parametrize("target", ["ADMIN", "USER", "SUPERUSER", "", None])
    def test_invalid_target_role(self, make_user, target):
        user = make_user("u")

        with pytest.raises(InvalidRoleError):
            CommissionService.activate_role(user.id, target)

        assert Transaction.query.count() == 0

    def test_unknown_user(self, app):
        with pytest.raises(NotFoundError):
            CommissionService.activate_role(4242, "ACTIVE_USER")

    def test_role_name_is_case_insensitive(self, make_user, sink):
        user = make_user("u")
        CommissionService.activate_role(user.id, " active_user ", sink=sink)
        assert role_of(user.id) == UserRole.ACTIVE_USER.value

    def test_second_activation_is_rejected(self, make_user, sink):
        sponsor = make_user("sponsor", role=UserRole.AFFILIATOR)
        user = make_user("u", referrer=sponsor)

        CommissionService.activate_role(user.id, "ACTIVE_USER", sink=sink)
        with pytest.raises(InvalidTransitionError):
            CommissionService.activate_role(user.id, "ACTIVE_USER", sink=sink)

        assert Transaction.query.filter_by(type=TransactionType.ACTIVATION_FEE.value).count() == 1
        assert Transaction.query.filter_by(type=TransactionType.REFERRAL_COMMISSION.value).count() == 1


# =============================================================================
# TEST CLASS: atomic unit
# =============================================================================

class TestAtomicity:

    def test_storage_fault_mid_cascade_rolls_back_everything(self, make_user, sink, monkeypatch):
        """
        TEST: the level-2 commission write fails.

        Verify: no fee, no level-1 commission, role unchanged, no notifications.
        """
        a = make_user("a", role=UserRole.AFFILIATOR)
        b = make_user("b", role=UserRole.ACTIVE_USER, referrer=a)
        c = make_user("c", referrer=b)
        a_id = a.id

        original_post = LedgerHelper.post_transaction
        posted = []

        def faulty_post(user_id, tx_type, amount, description, related_user_id=None, related_order_id=None):
            if user_id == a_id:
                raise OperationalError("INSERT INTO transactions", {}, Exception("disk I/O error"))
            tx = original_post(user_id, tx_type, amount, description, related_user_id, related_order_id)
            posted.append(tx.id)
            return tx

        monkeypatch.setattr(LedgerHelper, "post_transaction", staticmethod(faulty_post))

        with pytest.raises(LedgerWriteError):
            CommissionService.activate_role(c.id, "ACTIVE_USER", sink=sink)

        assert len(posted) == 2  # fee and level 1 were written before the fault
        assert Transaction.query.count() == 0
        assert role_of(c.id) == UserRole.USER.value
        assert sink.notifications == []

    def test_storage_fault_after_role_update(self, make_user, sink, monkeypatch):
        user = make_user("u")

        def broken_cascade(activating_user, fee_amount, new_role):
            raise OperationalError("INSERT INTO transactions", {}, Exception("database is locked"))

        monkeypatch.setattr(
            CommissionCascadeEngine, "distribute_activation_commission", staticmethod(broken_cascade)
        )

        with pytest.raises(LedgerWriteError):
            CommissionService.activate_role(user.id, "ACTIVE_USER", sink=sink)

        assert Transaction.query.count() == 0
        assert role_of(user.id) == UserRole.USER.value

    def test_unexpected_fault_leaves_nothing_to_commit(self, make_user, sink, monkeypatch):
        """
        TEST: a non-database error inside the unit rolls back the flushed fee,
        so a later commit on the same session persists nothing.
        """
        user = make_user("u")
        user_id = user.id

        def buggy_cascade(activating_user, fee_amount, new_role):
            raise RuntimeError("cascade bug")

        monkeypatch.setattr(
            CommissionCascadeEngine, "distribute_activation_commission", staticmethod(buggy_cascade)
        )

        with pytest.raises(RuntimeError):
            CommissionService.activate_role(user_id, "ACTIVE_USER", sink=sink)

        db.session.commit()

        assert Transaction.query.count() == 0
        assert role_of(user_id) == UserRole.USER.value
        assert sink.notifications == []

    def test_lost_check_and_set_race(self, make_user, sink, monkeypatch):
        """
        TEST: a competing request upgrades the role after our guard check
        but before our role write. The check-and-set matches no row.
        """
        user = make_user("u")
        target_id = user.id
        original_post = LedgerHelper.post_transaction

        def post_after_competing_upgrade(user_id, tx_type, amount, description,
                                         related_user_id=None, related_order_id=None):
            db.session.execute(
                User.__table__.update()
                .where(User.__table__.c.id == target_id)
                .values(role=UserRole.ACTIVE_USER.value)
            )
            return original_post(user_id, tx_type, amount, description, related_user_id, related_order_id)

        monkeypatch.setattr(LedgerHelper, "post_transaction", staticmethod(post_after_competing_upgrade))

        with pytest.raises(InvalidTransitionError):
            CommissionService.activate_role(target_id, "ACTIVE_USER", sink=sink)

        assert Transaction.query.count() == 0
        assert sink.notifications == []


# =============================================================================
# TEST CLASS: notifications
# =============================================================================

class TestNotifications:

    def test_one_notification_per_commission(self, make_user, sink):
        a = make_user("a", role=UserRole.AFFILIATOR)
        b = make_user("b", role=UserRole.ACTIVE_USER, referrer=a)
        c = make_user("carol", referrer=b)

        CommissionService.activate_role(c.id, "ACTIVE_USER", sink=sink)

        assert len(sink.notifications) == 2
        to_b = sink.for_user(b.id)[0]
        assert to_b.amount == Decimal("20.00")
        assert "carol" in to_b.message and "ACTIVE_USER" in to_b.message
        assert to_b.transaction["type"] == TransactionType.REFERRAL_COMMISSION.value

    def test_delivery_failure_never_rolls_back(self, make_user, failing_sink):
        a = make_user("a", role=UserRole.AFFILIATOR)
        b = make_user("b", referrer=a)

        user = CommissionService.activate_role(b.id, "ACTIVE_USER", sink=failing_sink)

        assert failing_sink.attempts == 1
        assert user.role == UserRole.ACTIVE_USER.value
        assert LedgerHelper.get_balance(a.id) == Decimal("20.00")
        assert LedgerHelper.get_balance(b.id) == Decimal("-100.00")


# =============================================================================
# TEST CLASS: referral code hint
# =============================================================================

class TestReferralHint:

    def test_hint_binds_referrer_when_missing(self, make_user, sink):
        sponsor = make_user("sponsor", role=UserRole.AFFILIATOR)
        user = make_user("u")

        CommissionService.activate_role(user.id, "ACTIVE_USER", referral_code_hint=sponsor.referral_code, sink=sink)

        assert db.session.get(User, user.id).referred_by == sponsor.id
        assert LedgerHelper.get_balance(sponsor.id) == Decimal("20.00")

    def test_hint_ignored_when_referrer_exists(self, make_user, sink):
        first = make_user("first", role=UserRole.ACTIVE_USER)
        other = make_user("other", role=UserRole.AFFILIATOR)
        user = make_user("u", referrer=first)

        CommissionService.activate_role(user.id, "ACTIVE_USER", referral_code_hint=other.referral_code, sink=sink)

        assert db.session.get(User, user.id).referred_by == first.id
        assert LedgerHelper.get_balance(other.id) == Decimal("0.00")

    def test_own_code_hint_ignored(self, make_user, sink):
        user = make_user("u")

        CommissionService.activate_role(user.id, "ACTIVE_USER", referral_code_hint=user.referral_code, sink=sink)

        assert db.session.get(User, user.id).referred_by is None

    def test_cycle_creating_hint_ignored(self, make_user, sink):
        root = make_user("root")
        child = make_user("child", role=UserRole.ACTIVE_USER, referrer=root)

        CommissionService.activate_role(root.id, "ACTIVE_USER", referral_code_hint=child.referral_code, sink=sink)

        assert db.session.get(User, root.id).referred_by is None
        assert LedgerHelper.get_balance(child.id) == Decimal("0.00")

    def test_unknown_hint_ignored(self, make_user, sink):
        user = make_user("u")
        CommissionService.activate_role(user.id, "ACTIVE_USER", referral_code_hint="ZZZZZZZZ", sink=sink)
        assert db.session.get(User, user.id).referred_by is None
