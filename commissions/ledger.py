# commissions/ledger.py
import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from logger import commission_logger
from models import Transaction, TransactionType
from commissions.config import CommissionConfigHelper
from commissions.errors import CommissionException, LedgerWriteError

logger = logging.getLogger(__name__)


@contextmanager
def ledger_unit_of_work(operation: str):
    """
    One atomic database transaction per triggering event.

    Usage:
        with ledger_unit_of_work("activation user=7"):
            ...writes...
    Commits on success. Any failure rolls back every write made inside the block;
    storage faults are re-raised as LedgerWriteError.
    """
    try:
        yield db.session
        db.session.commit()
    except CommissionException:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Storage fault during {operation}; unit rolled back: {e}")
        raise LedgerWriteError(f"Could not complete {operation}; no changes were saved") from e
    except Exception:
        db.session.rollback()
        logger.exception(f"Unexpected failure during {operation}; unit rolled back")
        raise


class LedgerHelper:
    """
    Append-only ledger access. Balances are never stored; they are the SUM of a
    user's transactions. Posting never commits: the caller owns the unit of work.
    """

    @staticmethod
    def post_transaction(
            user_id: int,
            tx_type: Union[TransactionType, str],
            amount,
            description: str,
            related_user_id: Optional[int] = None,
            related_order_id: Optional[int] = None,
    ) -> Transaction:
        tx_type = tx_type.value if isinstance(tx_type, TransactionType) else str(tx_type)
        amount = CommissionConfigHelper.round_amount(amount)

        transaction = Transaction(
            user_id=user_id,
            type=tx_type,
            amount=amount,
            description=description,
            related_user_id=related_user_id,
            related_order_id=related_order_id,
        )
        db.session.add(transaction)
        db.session.flush()  # Get transaction ID without commit

        commission_logger.info(
            f"LEDGER_POST: TXN#{transaction.id} | User#{user_id} | {tx_type} | "
            f"Amount {amount} | related_user={related_user_id} | related_order={related_order_id}"
        )
        return transaction

    @staticmethod
    def get_ledger(user_id: int) -> List[Transaction]:
        """All of a user's transactions, newest first."""
        return (Transaction.query
                .filter(Transaction.user_id == user_id)
                .order_by(Transaction.created_at.desc(), Transaction.id.desc())
                .all())

    @staticmethod
    def get_balance(user_id: int) -> Decimal:
        """Derivable balance computed in SQL."""
        result = db.session.query(
            db.func.coalesce(db.func.sum(Transaction.amount), 0)
        ).filter(Transaction.user_id == user_id).scalar()
        return CommissionConfigHelper.round_amount(Decimal(str(result)))

    @staticmethod
    def replay_balance(user_id: int) -> Decimal:
        """Balance obtained by replaying the ledger in creation order."""
        balance = Decimal('0')
        entries = (Transaction.query
                   .filter(Transaction.user_id == user_id)
                   .order_by(Transaction.created_at.asc(), Transaction.id.asc()))
        for entry in entries:
            balance += Decimal(str(entry.amount))
        return CommissionConfigHelper.round_amount(balance)

    @staticmethod
    def totals_by_type(user_id: int) -> Dict[str, Decimal]:
        rows = (db.session.query(Transaction.type, db.func.sum(Transaction.amount))
                .filter(Transaction.user_id == user_id)
                .group_by(Transaction.type)
                .all())
        return {
            tx_type: CommissionConfigHelper.round_amount(Decimal(str(total or 0)))
            for tx_type, total in rows
        }

    @staticmethod
    def total_earned(user_id: int) -> Decimal:
        result = db.session.query(
            db.func.coalesce(db.func.sum(Transaction.amount), 0)
        ).filter(
            Transaction.user_id == user_id,
            Transaction.amount > 0,
        ).scalar()
        return CommissionConfigHelper.round_amount(Decimal(str(result)))

    @staticmethod
    def sum_by_type(tx_type: Union[TransactionType, str]) -> Decimal:
        """Platform-wide total for one transaction type."""
        tx_type = tx_type.value if isinstance(tx_type, TransactionType) else str(tx_type)
        result = db.session.query(
            db.func.coalesce(db.func.sum(Transaction.amount), 0)
        ).filter(Transaction.type == tx_type).scalar()
        return CommissionConfigHelper.round_amount(Decimal(str(result)))
