"""
Catalog: products, categories and carousel images.

Search, filtering, sorting and pagination run in memory over a full fetch of
the products collection.
"""
import logging
import math
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import create_document, get_documents, serialize_doc, to_object_id, utcnow
from errors import INVALID_ARGUMENT, NOT_FOUND, ServiceError
from schemas import CarouselImage, Category, Product

logger = logging.getLogger(__name__)

PRODUCTS = "products"
CATEGORIES = "categories"
CAROUSEL = "carouselImages"

PAGE_SIZE = 8


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


# Validation
def validate_product(data: Dict[str, Any]) -> Dict[str, Any]:
    """Checks name, description, price, stock, image URL, category in that order."""
    name = _text(data.get("name"))
    if not name:
        raise ServiceError(INVALID_ARGUMENT, "Product name is required")

    description = _text(data.get("description"))
    if not description:
        raise ServiceError(INVALID_ARGUMENT, "Product description is required")

    price = _number(data.get("price"))
    if price is None:
        raise ServiceError(INVALID_ARGUMENT, "Valid product price is required")
    if price < 0:
        raise ServiceError(INVALID_ARGUMENT, "Product price cannot be negative")

    raw_stock = _number(data.get("stock_quantity"))
    if raw_stock is None or not raw_stock.is_integer():
        raise ServiceError(INVALID_ARGUMENT, "Valid stock quantity is required")
    stock = int(raw_stock)
    if stock < 0:
        raise ServiceError(INVALID_ARGUMENT, "Stock quantity cannot be negative")

    image_url = _text(data.get("main_image_url"))
    if not image_url:
        raise ServiceError(INVALID_ARGUMENT, "Product image URL is required")

    category_id = _text(data.get("category_id"))
    if not category_id:
        raise ServiceError(INVALID_ARGUMENT, "Please select a category")

    return {
        "name": name,
        "description": description,
        "price": price,
        "stock_quantity": stock,
        "main_image_url": image_url,
        "category_id": category_id,
        "featured": bool(data.get("featured") or False),
    }


def validate_category(data: Dict[str, Any]) -> Dict[str, str]:
    name = _text(data.get("name"))
    description = _text(data.get("description"))
    if not name or not description:
        raise ServiceError(INVALID_ARGUMENT, "Name and description are required")
    return {"name": name, "description": description}


def validate_carousel_image(data: Dict[str, Any]) -> Dict[str, Any]:
    image_url = _text(data.get("image_url"))
    if not image_url:
        raise ServiceError(INVALID_ARGUMENT, "Image URL is required")
    order = data.get("display_order")
    display_order = 0
    if order not in (None, ""):
        number = _number(order)
        if number is None or not number.is_integer():
            raise ServiceError(INVALID_ARGUMENT, "Display order must be a whole number")
        display_order = int(number)
    return {
        "image_url": image_url,
        "title": _text(data.get("title")),
        "subtitle": _text(data.get("subtitle")),
        "display_order": display_order,
        "active": data.get("active") is not False,
    }


# Products
def _resolve_category(db: Database, category_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not category_id or not ObjectId.is_valid(str(category_id)):
        return None
    try:
        doc = db[CATEGORIES].find_one({"_id": ObjectId(str(category_id))})
    except PyMongoError:
        logger.warning("Error fetching category %s", category_id, exc_info=True)
        return None
    return serialize_doc(doc) if doc else None


def list_products(db: Database) -> List[Dict[str, Any]]:
    products = []
    for doc in db[PRODUCTS].find():
        product = serialize_doc(doc)
        product["category"] = _resolve_category(db, doc.get("category_id"))
        products.append(product)
    return products


def get_product(db: Database, product_id: str) -> Dict[str, Any]:
    doc = db[PRODUCTS].find_one({"_id": to_object_id(product_id, "product")})
    if not doc:
        raise ServiceError(NOT_FOUND, "Product not found")
    product = serialize_doc(doc)
    product["category"] = _resolve_category(db, doc.get("category_id"))
    return product


def create_product(db: Database, data: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
    product = Product(**validate_product(data), created_by=user.get("id"))
    product_id = create_document(db, PRODUCTS, product)
    logger.info("Product %s created by %s", product_id, user.get("id"))
    return {"success": True, "id": product_id, "product": {"id": product_id, **product.model_dump()}}


def update_product(db: Database, product_id: str, data: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
    fields = validate_product(data)
    oid = to_object_id(product_id, "product")
    fields.update({"updated_at": utcnow(), "updated_by": user.get("id")})
    result = db[PRODUCTS].update_one({"_id": oid}, {"$set": fields})
    if result.matched_count == 0:
        raise ServiceError(NOT_FOUND, "Product not found")
    logger.info("Product %s updated by %s", product_id, user.get("id"))
    return {"success": True, "id": product_id}


def delete_product(db: Database, product_id: str) -> Dict[str, Any]:
    result = db[PRODUCTS].delete_one({"_id": to_object_id(product_id, "product")})
    if result.deleted_count == 0:
        raise ServiceError(NOT_FOUND, "Product not found")
    logger.info("Product %s deleted", product_id)
    return {"success": True}


# Categories
def list_categories(db: Database) -> List[Dict[str, Any]]:
    return get_documents(db, CATEGORIES, sort=[("name", 1)])


def create_category(db: Database, data: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
    category = Category(**validate_category(data), created_by=user.get("id"))
    category_id = create_document(db, CATEGORIES, category)
    logger.info("Category %s created by %s", category_id, user.get("id"))
    return {"success": True, "category": {"id": category_id, **category.model_dump()}}


def update_category(db: Database, category_id: str, data: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
    fields = validate_category(data)
    result = db[CATEGORIES].update_one(
        {"_id": to_object_id(category_id, "category")},
        {"$set": {**fields, "updated_at": utcnow(), "updated_by": user.get("id")}},
    )
    if result.matched_count == 0:
        raise ServiceError(NOT_FOUND, "Category not found")
    return {"success": True, "category": {"id": category_id, **fields}}


def delete_category(db: Database, category_id: str) -> Dict[str, Any]:
    # Products keep their category_id; list_products tolerates the dangling reference
    result = db[CATEGORIES].delete_one({"_id": to_object_id(category_id, "category")})
    if result.deleted_count == 0:
        raise ServiceError(NOT_FOUND, "Category not found")
    return {"success": True}


# Carousel
def list_carousel_images(db: Database, active_only: bool = False) -> List[Dict[str, Any]]:
    filter_dict = {"active": True} if active_only else None
    return get_documents(db, CAROUSEL, filter_dict, sort=[("display_order", 1)])


def create_carousel_image(db: Database, data: Dict[str, Any]) -> Dict[str, Any]:
    image = CarouselImage(**validate_carousel_image(data))
    image_id = create_document(db, CAROUSEL, image)
    return {"success": True, "id": image_id, "image": {"id": image_id, **image.model_dump()}}


def update_carousel_image(db: Database, image_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    fields = validate_carousel_image(data)
    result = db[CAROUSEL].update_one(
        {"_id": to_object_id(image_id, "carousel image")},
        {"$set": {**fields, "updated_at": utcnow()}},
    )
    if result.matched_count == 0:
        raise ServiceError(NOT_FOUND, "Carousel image not found")
    return {"success": True, "id": image_id}


def delete_carousel_image(db: Database, image_id: str) -> Dict[str, Any]:
    result = db[CAROUSEL].delete_one({"_id": to_object_id(image_id, "carousel image")})
    if result.deleted_count == 0:
        raise ServiceError(NOT_FOUND, "Carousel image not found")
    return {"success": True}


# Search / browse
def matches_query(product: Dict[str, Any], query: Optional[str]) -> bool:
    terms = (query or "").lower().split()
    if not terms:
        return True
    haystack = f"{product.get('name') or ''} {product.get('description') or ''}".lower()
    return all(term in haystack for term in terms)


def sort_products(products: List[Dict[str, Any]], sort: Optional[str]) -> List[Dict[str, Any]]:
    if sort == "price_asc":
        return sorted(products, key=lambda p: p.get("price") or 0)
    if sort == "price_desc":
        return sorted(products, key=lambda p: p.get("price") or 0, reverse=True)
    if sort == "name_asc":
        return sorted(products, key=lambda p: (p.get("name") or "").casefold())
    if sort == "name_desc":
        return sorted(products, key=lambda p: (p.get("name") or "").casefold(), reverse=True)
    if sort == "newest":
        return sorted(products, key=lambda p: str(p.get("created_at") or ""), reverse=True)
    return list(products)


def search_products(
    products: Iterable[Dict[str, Any]],
    query: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort: Optional[str] = None,
) -> List[Dict[str, Any]]:
    results = []
    for product in products:
        price = product.get("price") or 0
        if category and category != "all" and product.get("category_id") != category:
            continue
        if min_price is not None and price < min_price:
            continue
        if max_price is not None and price > max_price:
            continue
        if not matches_query(product, query):
            continue
        results.append(product)
    return sort_products(results, sort)


def filter_products(products: Iterable[Dict[str, Any]], filter_by: Optional[str]) -> List[Dict[str, Any]]:
    if filter_by == "featured":
        return [p for p in products if p.get("featured")]
    if filter_by == "inStock":
        return [p for p in products if (p.get("stock_quantity") or 0) > 0]
    return list(products)


def paginate(items: List[Any], page: int = 0, per_page: int = PAGE_SIZE) -> Dict[str, Any]:
    """Zero-based page slice with the total page count."""
    if per_page < 1:
        raise ServiceError(INVALID_ARGUMENT, "Page size must be positive")
    page = max(page, 0)
    start = page * per_page
    return {
        "items": items[start:start + per_page],
        "page": page,
        "total_pages": math.ceil(len(items) / per_page),
        "total": len(items),
    }
