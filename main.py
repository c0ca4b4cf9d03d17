import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr
from pymongo.database import Database
from pymongo.errors import PyMongoError

import auth
import catalog
import orders
import reviews
import database
from auth import get_claims, get_current_user, require_admin
from cart import Cart
from database import get_db, utcnow
from errors import INTERNAL, INVALID_ARGUMENT, ServiceError, error_payload
from schemas import CartLine, ShippingInfo

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("storefront")

# App init
app = FastAPI(title="Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error rendering
@app.exception_handler(ServiceError)
async def handle_service_error(request: Request, exc: ServiceError):
    if exc.code == INTERNAL:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_payload(exc.code, exc.message))


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return JSONResponse(status_code=400, content=error_payload(INVALID_ARGUMENT, message))


@app.exception_handler(PyMongoError)
async def handle_database_error(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_payload(INTERNAL, str(exc)))


# Request models
class SignupRequest(BaseModel):
    email: EmailStr
    password: str
    display_name: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdateRequest(BaseModel):
    display_name: Optional[str] = None


class GrantAdminRequest(BaseModel):
    email: EmailStr


# Fields stay optional here; catalog validates them in a fixed order
class ProductRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Any] = None
    stock_quantity: Optional[Any] = None
    main_image_url: Optional[str] = None
    category_id: Optional[str] = None
    featured: Optional[bool] = None


class CategoryRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class CarouselImageRequest(BaseModel):
    image_url: Optional[str] = None
    title: Optional[str] = None
    subtitle: Optional[str] = None
    display_order: Optional[Any] = None
    active: Optional[bool] = None


class SearchRequest(BaseModel):
    query: Optional[str] = None
    category: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    sort: Optional[str] = None
    filter_by: Optional[str] = None
    page: Optional[int] = None


class CommentRequest(BaseModel):
    text: Optional[str] = None
    rating: Optional[Any] = None


class ReplyRequest(BaseModel):
    text: Optional[str] = None


class QuestionRequest(BaseModel):
    question: Optional[str] = None


class AnswerRequest(BaseModel):
    answer: Optional[str] = None


class OrderCreateRequest(BaseModel):
    items: Dict[str, int]
    shipping: ShippingInfo


class CheckoutRequest(BaseModel):
    items: List[CartLine]
    shipping: ShippingInfo


class OrderStatusRequest(BaseModel):
    status: str


# Routes
@app.get("/")
def root():
    return {"message": "Storefront API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = database.db.name
            response["connection_status"] = "Connected"
            try:
                collections = database.db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except PyMongoError as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️  Available but not initialized"
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response


# Auth
@app.post("/api/auth/signup")
def signup(req: SignupRequest, db: Database = Depends(get_db)):
    return auth.signup(db, req.email, req.password, req.display_name)


@app.post("/api/auth/login")
def login(req: LoginRequest, db: Database = Depends(get_db)):
    return auth.login(db, req.email, req.password)


@app.get("/api/auth/me")
def me(user: dict = Depends(get_current_user)):
    return user


@app.patch("/api/auth/me")
def update_me(req: ProfileUpdateRequest, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return auth.update_profile(db, user["id"], req.display_name)


def _auth_echo(claims: Dict[str, Any], db: Database) -> Dict[str, Any]:
    profile = auth.get_profile(db, claims["sub"])
    logger.info("Auth test for %s (profile exists: %s)", claims["sub"], profile is not None)
    return {
        "success": True,
        "message": "Authentication successful",
        "userId": claims["sub"],
        "email": claims.get("email") or "No email",
        "emailVerified": bool(claims.get("email_verified")),
        "authTime": claims.get("auth_time"),
        "userDocExists": profile is not None,
        "userData": profile,
    }


@app.post("/api/test-auth")
def test_auth(claims: dict = Depends(get_claims), db: Database = Depends(get_db)):
    return _auth_echo(claims, db)


@app.get("/api/test-auth")
def test_auth_http(claims: dict = Depends(get_claims), db: Database = Depends(get_db)):
    return _auth_echo(claims, db)


# Admin
@app.post("/api/admin/initialize")
def initialize_admin(user: dict = Depends(get_current_user), claims: dict = Depends(get_claims), db: Database = Depends(get_db)):
    return auth.initialize_admin(db, user, claims)


@app.post("/api/admin/grant")
def grant_admin(req: GrantAdminRequest, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    profile = auth.grant_admin_by_email(db, req.email)
    logger.info("%s granted ADMIN to %s", admin["id"], profile["id"])
    return {"success": True, "user": profile}


@app.get("/api/admin/stats")
def admin_stats(admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return {
        "users": db[auth.USERS].count_documents({}),
        "products": db[catalog.PRODUCTS].count_documents({}),
        "categories": db[catalog.CATEGORIES].count_documents({}),
        "orders": db[orders.ORDERS].count_documents({}),
        "comments": db[reviews.COMMENTS].count_documents({}),
        "questions": db[reviews.QUESTIONS].count_documents({}),
    }


# Categories
@app.get("/api/categories")
def list_categories(db: Database = Depends(get_db)):
    return {"categories": catalog.list_categories(db)}


@app.post("/api/categories")
def create_category(req: CategoryRequest, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return catalog.create_category(db, req.model_dump(), admin)


@app.put("/api/categories/{category_id}")
def update_category(category_id: str, req: CategoryRequest, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return catalog.update_category(db, category_id, req.model_dump(), admin)


@app.delete("/api/categories/{category_id}")
def delete_category(category_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return catalog.delete_category(db, category_id)


# Carousel
@app.get("/api/carousel")
def list_carousel_images(active: bool = False, db: Database = Depends(get_db)):
    return {"images": catalog.list_carousel_images(db, active_only=active)}


@app.post("/api/carousel")
def create_carousel_image(req: CarouselImageRequest, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return catalog.create_carousel_image(db, req.model_dump())


@app.put("/api/carousel/{image_id}")
def update_carousel_image(image_id: str, req: CarouselImageRequest, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return catalog.update_carousel_image(db, image_id, req.model_dump())


@app.delete("/api/carousel/{image_id}")
def delete_carousel_image(image_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return catalog.delete_carousel_image(db, image_id)


# Products
@app.get("/api/products")
def list_products(db: Database = Depends(get_db)):
    return {"products": catalog.list_products(db)}


@app.get("/api/products/featured")
def featured_products(db: Database = Depends(get_db)):
    return {"products": catalog.filter_products(catalog.list_products(db), "featured")}


@app.post("/api/products/search")
def search_products(req: SearchRequest, db: Database = Depends(get_db)):
    products = catalog.search_products(
        catalog.list_products(db),
        query=req.query,
        category=req.category,
        min_price=req.min_price,
        max_price=req.max_price,
        sort=req.sort,
    )
    products = catalog.filter_products(products, req.filter_by)
    if req.page is None:
        return {"products": products}
    page = catalog.paginate(products, req.page)
    return {"products": page["items"], "page": page["page"], "total_pages": page["total_pages"], "total": page["total"]}


@app.get("/api/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return catalog.get_product(db, product_id)


@app.post("/api/products")
def create_product(req: ProductRequest, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return catalog.create_product(db, req.model_dump(), admin)


@app.put("/api/products/{product_id}")
def update_product(product_id: str, req: ProductRequest, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return catalog.update_product(db, product_id, req.model_dump(), admin)


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return catalog.delete_product(db, product_id)


# Reviews
@app.get("/api/products/{product_id}/comments")
def list_comments(product_id: str, starred: bool = False, db: Database = Depends(get_db)):
    return {"comments": reviews.list_comments(db, product_id, starred_only=starred)}


@app.post("/api/products/{product_id}/comments")
def add_comment(product_id: str, req: CommentRequest, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return reviews.add_comment(db, product_id, user, req.text, req.rating)


@app.put("/api/comments/{comment_id}")
def update_comment(comment_id: str, req: CommentRequest, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return reviews.update_comment(db, comment_id, user, req.text, req.rating)


@app.delete("/api/comments/{comment_id}")
def delete_comment(comment_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return reviews.delete_comment(db, comment_id, user)


@app.post("/api/comments/{comment_id}/star")
def toggle_starred(comment_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return reviews.toggle_starred(db, comment_id)


@app.post("/api/comments/{comment_id}/replies")
def add_reply(comment_id: str, req: ReplyRequest, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return reviews.add_reply(db, comment_id, user, req.text)


@app.put("/api/replies/{reply_id}")
def update_reply(reply_id: str, req: ReplyRequest, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return reviews.update_reply(db, reply_id, user, req.text)


@app.delete("/api/replies/{reply_id}")
def delete_reply(reply_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return reviews.delete_reply(db, reply_id, user)


# Q&A
@app.get("/api/products/{product_id}/questions")
def list_questions(product_id: str, db: Database = Depends(get_db)):
    return {"questions": reviews.list_questions(db, product_id)}


@app.post("/api/products/{product_id}/questions")
def ask_question(product_id: str, req: QuestionRequest, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return reviews.ask_question(db, product_id, user, req.question)


@app.post("/api/questions/{question_id}/answer")
def answer_question(question_id: str, req: AnswerRequest, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return reviews.answer_question(db, question_id, admin, req.answer)


@app.post("/api/questions/{question_id}/helpful")
def vote_helpful(question_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return reviews.vote_helpful(db, question_id)


@app.post("/api/questions/{question_id}/report")
def report_question(question_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return reviews.report_question(db, question_id)


@app.delete("/api/questions/{question_id}")
def delete_question(question_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return reviews.delete_question(db, question_id, user)


# Orders
@app.post("/api/orders")
def create_order(req: OrderCreateRequest, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return orders.create_order(db, user, req.items, req.shipping)


@app.post("/api/cart/checkout")
def checkout(req: CheckoutRequest, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    cart = Cart.from_lines([line.model_dump() for line in req.items])
    if cart.state == "empty":
        raise ServiceError(INVALID_ARGUMENT, "Cart is empty")
    return orders.create_order(db, user, cart.quantities(), req.shipping)


@app.get("/api/orders")
def list_orders(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return {"orders": orders.list_user_orders(db, user)}


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return orders.get_order(db, order_id, user)


@app.put("/api/orders/{order_id}/status")
def update_order_status(order_id: str, req: OrderStatusRequest, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return orders.update_order_status(db, order_id, req.status)


# Seed demo catalog on startup
DEMO_CATEGORIES: List[dict] = [
    {"name": "Apparel", "description": "Shirts, jackets and everyday wear"},
    {"name": "Footwear", "description": "Running, training and casual shoes"},
    {"name": "Accessories", "description": "Bags, bottles and small gear"},
]

DEMO_PRODUCTS: List[dict] = [
    {
        "name": "Classic Red Shirt",
        "description": "Soft cotton crew neck in bright red",
        "price": 24.99,
        "stock_quantity": 120,
        "main_image_url": "https://images.unsplash.com/photo-1521572163474-6864f9cf17ab?q=80&w=1200&auto=format&fit=crop",
        "category": "Apparel",
        "featured": True,
    },
    {
        "name": "Women's Jacket",
        "description": "Stylish winter wear",
        "price": 89,
        "stock_quantity": 40,
        "main_image_url": "https://images.unsplash.com/photo-1544441892-7d2fbe2d8ffd?q=80&w=1200&auto=format&fit=crop",
        "category": "Apparel",
        "featured": False,
    },
    {
        "name": "Men's Running Shoes",
        "description": "Lightweight and comfortable",
        "price": 129,
        "stock_quantity": 200,
        "main_image_url": "https://images.unsplash.com/photo-1542293787938-c9e299b88054?q=80&w=1200&auto=format&fit=crop",
        "category": "Footwear",
        "featured": True,
    },
    {
        "name": "Stainless Steel Bottle",
        "description": "Insulated, 1L",
        "price": 19.99,
        "stock_quantity": 0,
        "main_image_url": "https://images.unsplash.com/photo-1602143407151-7111542de8f5?q=80&w=1200&auto=format&fit=crop",
        "category": "Accessories",
        "featured": False,
    },
]


def seed_catalog(db: Database) -> int:
    """Insert the demo catalog when there are no products; returns products added."""
    if db[catalog.PRODUCTS].count_documents({}) > 0:
        return 0
    category_ids = {}
    for category in DEMO_CATEGORIES:
        category_ids[category["name"]] = database.create_document(db, catalog.CATEGORIES, category)
    for product in DEMO_PRODUCTS:
        doc = {k: v for k, v in product.items() if k != "category"}
        doc["category_id"] = category_ids[product["category"]]
        doc["created_at"] = utcnow()
        database.create_document(db, catalog.PRODUCTS, doc)
    return len(DEMO_PRODUCTS)


@app.on_event("startup")
def seed_products_if_empty():
    if database.db is None or os.getenv("SEED_DEMO_DATA", "1").lower() in ("0", "false", "no"):
        return
    try:
        added = seed_catalog(database.db)
        if added:
            logger.info("Seeded %d demo products", added)
    except PyMongoError:
        logger.exception("Seeding demo catalog failed")


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
