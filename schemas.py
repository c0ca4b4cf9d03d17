"""
Database Schemas for the storefront

Each Pydantic model maps to a MongoDB collection. Collection names follow the
storefront's existing data rather than the lowercased class name:

- accounts          (Account)
- users             (UserProfile)
- products          (Product)
- categories        (Category)
- carouselImages    (CarouselImage)
- comments          (Comment)
- comment_replies   (Reply)
- product_questions (Question)
- orders            (Order)
- orderItems        (OrderItem)
"""
from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field, EmailStr


USER_ROLE = "USER"
ADMIN_ROLE = "ADMIN"

ORDER_STATUSES = ("PENDING", "PAID", "SHIPPED", "DELIVERED", "CANCELLED")


class Account(BaseModel):
    """
    Sign-in credentials, one per identity
    Collection name: "accounts"
    """
    email: EmailStr = Field(..., description="Sign-in email, lowercased")
    password_hash: str = Field(..., description="BCrypt password hash")
    email_verified: bool = Field(False, description="Whether the email was verified")


class UserProfile(BaseModel):
    """
    Profile document sharing its _id with the account
    Collection name: "users"
    """
    email: Optional[str] = Field(None, description="Email address")
    display_name: Optional[str] = Field(None, description="Name shown on reviews and questions")
    roles: List[str] = Field(default_factory=lambda: [USER_ROLE], min_length=1, description="USER and/or ADMIN")


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "products"
    """
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    price: float = Field(..., ge=0, description="Unit price")
    stock_quantity: int = Field(0, ge=0, description="Units in stock")
    main_image_url: str = Field(..., min_length=1)
    category_id: Optional[str] = Field(None, description="Soft reference to categories")
    featured: bool = Field(False, description="Shown on the home page")
    created_by: Optional[str] = None


class Category(BaseModel):
    """
    Categories collection schema
    Collection name: "categories"
    """
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    created_by: Optional[str] = None


class CarouselImage(BaseModel):
    """
    Home page carousel slides
    Collection name: "carouselImages"
    """
    image_url: str = Field(..., min_length=1)
    title: str = ""
    subtitle: str = ""
    display_order: int = 0
    active: bool = True


class Comment(BaseModel):
    """
    Product reviews
    Collection name: "comments"
    """
    product_id: str
    user_id: str
    user_name: Optional[str] = None
    text: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5)
    starred: bool = False


class Reply(BaseModel):
    """
    Replies to a review
    Collection name: "comment_replies"
    """
    comment_id: str
    user_id: str
    user_name: Optional[str] = None
    text: str = Field(..., min_length=1)


class AnsweredBy(BaseModel):
    id: str
    name: Optional[str] = None


class Question(BaseModel):
    """
    Product Q&A
    Collection name: "product_questions"
    """
    product_id: str
    user_id: str
    user_name: Optional[str] = None
    question: str = Field(..., min_length=1)
    answer: Optional[str] = None
    answered: bool = False
    answered_by: Optional[AnsweredBy] = None
    answered_at: Optional[datetime] = None
    helpful_votes: int = Field(0, ge=0)
    report_count: int = Field(0, ge=0)
    active: bool = True
    asked_at: datetime


class ShippingInfo(BaseModel):
    name: str
    address: str
    phone: str
    payment_method: str = "card"


class CartLine(BaseModel):
    """
    One cart line as the client stores it; not persisted server-side
    """
    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    price: float = Field(0, ge=0)
    quantity: int = Field(1, ge=1)
    main_image_url: Optional[str] = Field(None, validation_alias=AliasChoices("main_image_url", "imageUrl", "image_url"))
    stock_quantity: Optional[int] = None


class OrderItem(BaseModel):
    """
    Order lines
    Collection name: "orderItems"
    """
    order_id: str
    product_id: str
    product_name: str
    product_image_url: Optional[str] = None
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "orders"
    """
    user_id: str
    status: str = Field("PENDING", description="PENDING | PAID | SHIPPED | DELIVERED | CANCELLED")
    total: float = Field(0, ge=0)
    shipping: ShippingInfo
