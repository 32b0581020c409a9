from decimal import Decimal
import logging

from flask import Blueprint, jsonify

from extensions import db
from models import Product, Order
from commissions.errors import NotFoundError, ValidationError
from blueprints.admin import admin_required
from utils import parse_json_body, require_fields, parse_decimal


logger = logging.getLogger(__name__)

bp = Blueprint('products', __name__, url_prefix="")


def _get_product_or_404(product_id):
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


def _apply_product_fields(product, data):
    """Copy validated fields from a request body onto `product`."""
    for field, attr in (("name", "name"), ("description", "description"), ("imageUrl", "image_url")):
        if field in data:
            value = str(data[field] or "").strip()
            if not value:
                raise ValidationError(f"{field} cannot be empty")
            setattr(product, attr, value)

    if "price" in data:
        price = parse_decimal(data["price"], "price")
        if price <= 0:
            raise ValidationError("price must be positive")
        product.price = price

    if "commission" in data:
        product.commission = parse_decimal(
            data["commission"], "commission", minimum=Decimal("0"), maximum=Decimal("100")
        )

    if "rating" in data:
        product.rating = float(parse_decimal(data["rating"], "rating", minimum=Decimal("0"), maximum=Decimal("5")))


#==========================================================================
# CATALOGUE
#==========================================================================
@bp.route("/api/products", methods=["GET"])
def list_products():
    products = Product.query.order_by(Product.created_at.desc(), Product.id.desc()).all()
    return jsonify([product.to_dict() for product in products]), 200


@bp.route("/api/products/<int:product_id>", methods=["GET"])
def get_product(product_id):
    return jsonify(_get_product_or_404(product_id).to_dict()), 200


#==========================================================================
# ADMIN MANAGEMENT
#==========================================================================
@bp.route("/api/products", methods=["POST"])
@admin_required
def create_product():
    data = parse_json_body()
    require_fields(data, "name", "description", "price", "imageUrl")

    product = Product(commission=Decimal("0"), rating=0, review_count=0)
    _apply_product_fields(product, data)

    db.session.add(product)
    db.session.commit()
    logger.info(f"Product {product.id} created: {product.name} @ {product.price}")
    return jsonify(product.to_dict()), 201


@bp.route("/api/products/<int:product_id>", methods=["PUT"])
@admin_required
def update_product(product_id):
    product = _get_product_or_404(product_id)
    _apply_product_fields(product, parse_json_body())

    db.session.commit()
    logger.info(f"Product {product.id} updated")
    return jsonify(product.to_dict()), 200


@bp.route("/api/products/<int:product_id>", methods=["DELETE"])
@admin_required
def delete_product(product_id):
    product = _get_product_or_404(product_id)

    if Order.query.filter_by(product_id=product.id).first():
        raise ValidationError("Product has orders and cannot be deleted")

    db.session.delete(product)
    db.session.commit()
    logger.info(f"Product {product_id} deleted")
    return jsonify({"message": "Product deleted"}), 200
