# Overview: Flask API routes for catalog lookup on the sale screen.

from flask import Blueprint, jsonify, request

from ..decorators import require_actor, require_permission
from ..services.container import get_services
from ..services.identity import CAP_SALE_CREATE
from .errors import json_error

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_actor
@require_permission(CAP_SALE_CREATE)
def list_products_route():
    """
    Query params:
        q: matches name or sku (substring), or barcode (exact)
        category_id: optional filter
        limit: default 100
    """
    q = request.args.get("q")
    category_id = request.args.get("category_id")
    limit = request.args.get("limit", default=100, type=int)

    products = get_services().catalog.search(q, category_id=category_id, limit=max(1, min(limit, 500)))
    return jsonify({"products": [p.to_dict() for p in products], "count": len(products)})


@products_bp.get("/<product_id>")
@require_actor
@require_permission(CAP_SALE_CREATE)
def get_product_route(product_id):
    try:
        return jsonify({"product": get_services().catalog.get(product_id).to_dict()})
    except Exception as exc:
        return json_error(exc, "load product")
