# commissions/purchase.py
import logging
from typing import Optional

from extensions import db
from models import User, Product, Order, OrderStatus, REFERRAL_CODE_LENGTH
from commissions.cascade import CommissionCascadeEngine
from commissions.errors import NotFoundError
from commissions.ledger import ledger_unit_of_work
from commissions.notifications import NotificationDispatcher


logger = logging.getLogger(__name__)


def normalize_referral_code(code: Optional[str]) -> Optional[str]:
    if code is None:
        return None
    code = str(code).strip().upper()
    if len(code) > REFERRAL_CODE_LENGTH:
        logger.info(f"Referral code longer than {REFERRAL_CODE_LENGTH} characters treated as unknown")
        return None
    return code or None


class PurchaseWorkflow:
    """Order creation plus the single-level product commission, committed together."""

    @staticmethod
    def purchase_product(buyer_id: int, product_id: int, referral_code: Optional[str] = None, sink=None) -> Order:
        buyer = db.session.get(User, buyer_id)
        if buyer is None:
            raise NotFoundError("User not found")

        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")

        code = normalize_referral_code(referral_code)

        with ledger_unit_of_work(f"purchase of product {product_id} by user {buyer_id}"):
            order = Order(
                user_id=buyer.id,
                product_id=product.id,
                referral_code=code,
                amount=product.price,
                status=OrderStatus.COMPLETED.value,
            )
            db.session.add(order)
            db.session.flush()

            result = CommissionCascadeEngine.distribute_order_commission(order, product)

        logger.info(
            f"Order {order.id}: user {buyer.id} bought product {product.id} for {order.amount} "
            f"(referral={code or '-'}, commission={result.total})"
        )

        NotificationDispatcher.dispatch(result.notifications, sink)
        return order
