"""
Orders placed from a cart.

Stock is checked for every line before anything is written; the order, its
lines and the stock decrements are then written one document at a time.
"""
import logging
from typing import Any, Dict, List

from pymongo.database import Database

from database import create_document, get_documents, serialize_doc, to_object_id, utcnow
from errors import FAILED_PRECONDITION, INVALID_ARGUMENT, NOT_FOUND, ServiceError
from roles import REQUIRE_OWNER_OR_ADMIN, ensure_authorized
from schemas import ORDER_STATUSES, Order, OrderItem, ShippingInfo

logger = logging.getLogger(__name__)

ORDERS = "orders"
ORDER_ITEMS = "orderItems"
PRODUCTS = "products"


def _with_items(db: Database, order: Dict[str, Any]) -> Dict[str, Any]:
    order["items"] = get_documents(db, ORDER_ITEMS, {"order_id": order["id"]})
    return order


def create_order(db: Database, user: Dict[str, Any], items: Dict[str, int], shipping: ShippingInfo) -> Dict[str, Any]:
    if not items:
        raise ServiceError(INVALID_ARGUMENT, "Order must contain at least one item")

    products = {}
    for product_id, quantity in items.items():
        if int(quantity) < 1:
            raise ServiceError(INVALID_ARGUMENT, f"Invalid quantity for product: {product_id}")
        product = db[PRODUCTS].find_one({"_id": to_object_id(product_id, "product")})
        if not product:
            raise ServiceError(NOT_FOUND, f"Product not found: {product_id}")
        if (product.get("stock_quantity") or 0) < quantity:
            raise ServiceError(FAILED_PRECONDITION, f"Not enough stock for product: {product.get('name')}")
        products[product_id] = product

    order_id = create_document(db, ORDERS, Order(user_id=user["id"], shipping=shipping))

    total = 0.0
    for product_id, quantity in items.items():
        product = products[product_id]
        line = OrderItem(
            order_id=order_id,
            product_id=product_id,
            product_name=product.get("name"),
            product_image_url=product.get("main_image_url"),
            quantity=quantity,
            price=product.get("price") or 0,
        )
        create_document(db, ORDER_ITEMS, line)
        db[PRODUCTS].update_one({"_id": product["_id"]}, {"$inc": {"stock_quantity": -quantity}})
        total += line.price * quantity

    total = round(total, 2)
    db[ORDERS].update_one({"_id": to_object_id(order_id)}, {"$set": {"total": total, "updated_at": utcnow()}})
    logger.info("Order %s placed by %s for %.2f", order_id, user["id"], total)
    return {"success": True, "order_id": order_id, "total": total}


def list_user_orders(db: Database, user: Dict[str, Any]) -> List[Dict[str, Any]]:
    orders = get_documents(db, ORDERS, {"user_id": user["id"]}, sort=[("created_at", -1)])
    return [_with_items(db, order) for order in orders]


def get_order(db: Database, order_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
    doc = db[ORDERS].find_one({"_id": to_object_id(order_id, "order")})
    if not doc:
        raise ServiceError(NOT_FOUND, "Order not found")
    ensure_authorized(user, REQUIRE_OWNER_OR_ADMIN, owner_id=doc.get("user_id"), message="Unauthorized access to order")
    return _with_items(db, serialize_doc(doc))


def update_order_status(db: Database, order_id: str, status: str) -> Dict[str, Any]:
    status = (status or "").upper()
    if status not in ORDER_STATUSES:
        raise ServiceError(INVALID_ARGUMENT, f"Status must be one of {', '.join(ORDER_STATUSES)}")
    result = db[ORDERS].update_one(
        {"_id": to_object_id(order_id, "order")},
        {"$set": {"status": status, "updated_at": utcnow()}},
    )
    if result.matched_count == 0:
        raise ServiceError(NOT_FOUND, "Order not found")
    return {"success": True, "status": status}
