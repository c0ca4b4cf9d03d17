"""
Identity and profile resolution.

Accounts (credentials) and profiles (display name, roles) live in separate
collections sharing the same _id. Tokens are HS256 JWTs.
"""
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import Depends, Header
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

from database import get_db, serialize_doc, to_object_id, utcnow
from errors import FAILED_PRECONDITION, NOT_FOUND, PERMISSION_DENIED, UNAUTHENTICATED, ServiceError
from roles import REQUIRE_ADMIN, ensure_authorized, normalize_roles
from schemas import ADMIN_ROLE, USER_ROLE, Account, UserProfile

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALG = "HS256"
JWT_EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", "7"))
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@example.com")

ACCOUNTS = "accounts"
USERS = "users"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# Tokens
def create_token(uid: str, email: str, name: Optional[str] = None, email_verified: bool = False) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": uid,
        "email": email,
        "name": name,
        "email_verified": email_verified,
        "auth_time": int(now.timestamp()),
        "exp": now + timedelta(days=JWT_EXPIRE_DAYS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except JWTError:
        raise ServiceError(UNAUTHENTICATED, "Invalid or expired token")
    if not ObjectId.is_valid(str(claims.get("sub") or "")):
        raise ServiceError(UNAUTHENTICATED, "Invalid authentication token")
    return claims


# Profiles
def ensure_profile(db: Database, uid: str, claims: Dict[str, Any]) -> Dict[str, Any]:
    """Fetch the profile for uid, creating a USER profile if none exists yet."""
    oid = to_object_id(uid, "user")
    doc = db[USERS].find_one({"_id": oid})
    if doc is None:
        logger.info("Creating missing profile for %s", uid)
        now = utcnow()
        fresh = UserProfile(email=claims.get("email"), display_name=claims.get("name"))
        doc = {
            "_id": oid,
            **fresh.model_dump(),
            "created_at": now,
            "updated_at": now,
        }
        db[USERS].insert_one(doc)
    profile = serialize_doc(doc)
    profile["roles"] = normalize_roles(doc)
    return profile


def get_profile(db: Database, uid: str) -> Optional[Dict[str, Any]]:
    doc = db[USERS].find_one({"_id": to_object_id(uid, "user")})
    if doc is None:
        return None
    profile = serialize_doc(doc)
    profile["roles"] = normalize_roles(doc)
    return profile


def update_profile(db: Database, uid: str, display_name: Optional[str]) -> Dict[str, Any]:
    updates: Dict[str, Any] = {"updated_at": utcnow()}
    if display_name is not None:
        updates["display_name"] = display_name.strip()
    result = db[USERS].update_one({"_id": to_object_id(uid, "user")}, {"$set": updates})
    if result.matched_count == 0:
        raise ServiceError(NOT_FOUND, "User not found")
    return get_profile(db, uid)


def grant_admin(db: Database, uid: str) -> Dict[str, Any]:
    # Additive: existing roles are kept
    result = db[USERS].update_one(
        {"_id": to_object_id(uid, "user")},
        {"$addToSet": {"roles": {"$each": [USER_ROLE, ADMIN_ROLE]}}, "$set": {"updated_at": utcnow()}},
    )
    if result.matched_count == 0:
        raise ServiceError(NOT_FOUND, "User not found")
    logger.info("Granted ADMIN to %s", uid)
    return get_profile(db, uid)


def grant_admin_by_email(db: Database, email: str) -> Dict[str, Any]:
    doc = db[USERS].find_one({"email": email.lower()})
    if doc is None:
        raise ServiceError(NOT_FOUND, f"No user with email {email}")
    return grant_admin(db, str(doc["_id"]))


def initialize_admin(db: Database, profile: Dict[str, Any], claims: Dict[str, Any]) -> Dict[str, Any]:
    """Promote the designated bootstrap email, only while no admin exists."""
    email = (claims.get("email") or "").lower()
    if email != ADMIN_EMAIL.lower():
        raise ServiceError(PERMISSION_DENIED, "Only the designated admin email can be initialized as admin")
    existing = db[USERS].count_documents({"$or": [{"roles": ADMIN_ROLE}, {"role": "admin"}]})
    if existing:
        raise ServiceError(FAILED_PRECONDITION, "An admin user already exists")
    db[USERS].update_one(
        {"_id": to_object_id(profile["id"], "user")},
        {"$set": {"roles": [USER_ROLE, ADMIN_ROLE], "updated_at": utcnow()}},
    )
    logger.info("Initialized admin user %s", profile["id"])
    return {"success": True, "message": "You are now the admin. Please sign out and sign back in."}


# Sign-up / sign-in
def _session(profile: Dict[str, Any], email_verified: bool) -> Dict[str, Any]:
    token = create_token(profile["id"], profile.get("email"), profile.get("display_name"), email_verified)
    return {"token": token, "user": profile}


def signup(db: Database, email: str, password: str, display_name: Optional[str] = None) -> Dict[str, Any]:
    email = email.lower()
    if db[ACCOUNTS].find_one({"email": email}):
        raise ServiceError(FAILED_PRECONDITION, "Email already registered")
    account = Account(email=email, password_hash=pwd_context.hash(password))
    doc = account.model_dump()
    doc["created_at"] = utcnow()
    uid = str(db[ACCOUNTS].insert_one(doc).inserted_id)
    profile = ensure_profile(db, uid, {"email": email, "name": display_name})
    logger.info("Registered user %s", uid)
    return _session(profile, account.email_verified)


def login(db: Database, email: str, password: str) -> Dict[str, Any]:
    account = db[ACCOUNTS].find_one({"email": email.lower()})
    if not account or not pwd_context.verify(password, account.get("password_hash", "")):
        raise ServiceError(UNAUTHENTICATED, "Invalid credentials")
    profile = ensure_profile(db, str(account["_id"]), {"email": account["email"]})
    return _session(profile, account.get("email_verified", False))


# Dependencies
def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    token = authorization.replace("Bearer ", "").strip()
    return token or None


def get_claims(authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    token = _bearer_token(authorization)
    if token is None:
        raise ServiceError(UNAUTHENTICATED, "User must be authenticated")
    return decode_token(token)


def get_current_user(claims: Dict[str, Any] = Depends(get_claims), db: Database = Depends(get_db)) -> Dict[str, Any]:
    return ensure_profile(db, claims["sub"], claims)


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    ensure_authorized(user, REQUIRE_ADMIN, message="User must be an admin to perform this action")
    return user
