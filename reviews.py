"""
Product reviews (comments with replies) and product Q&A.

Helpful votes and reports are plain counters with no per-user record, so the
same user can vote or report more than once. Deleting a comment removes its
replies first and then the comment itself; the two steps are not transactional.
"""
import logging
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, get_documents, serialize_doc, to_object_id, utcnow
from errors import INVALID_ARGUMENT, NOT_FOUND, UNAUTHENTICATED, ServiceError
from roles import REQUIRE_OWNER_OR_ADMIN, ensure_authorized
from schemas import AnsweredBy, Comment, Question, Reply

logger = logging.getLogger(__name__)

COMMENTS = "comments"
REPLIES = "comment_replies"
QUESTIONS = "product_questions"


def _require_user(user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not user or not user.get("id"):
        raise ServiceError(UNAUTHENTICATED, "User must be logged in")
    return user


def _require_text(text: Optional[str], label: str) -> str:
    text = (text or "").strip()
    if not text:
        raise ServiceError(INVALID_ARGUMENT, f"{label} is required")
    return text


def _rating(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = None
    if isinstance(value, bool) or number is None or not number.is_integer() or not 1 <= number <= 5:
        raise ServiceError(INVALID_ARGUMENT, "Rating must be between 1 and 5")
    return int(number)


def _find(db: Database, collection: str, doc_id: str, label: str) -> Dict[str, Any]:
    doc = db[collection].find_one({"_id": to_object_id(doc_id, label.lower())})
    if not doc:
        raise ServiceError(NOT_FOUND, f"{label} not found")
    return doc


# Comments
def list_comments(db: Database, product_id: str, starred_only: bool = False) -> List[Dict[str, Any]]:
    if not product_id:
        raise ServiceError(INVALID_ARGUMENT, "Invalid product ID")
    filter_dict: Dict[str, Any] = {"product_id": product_id}
    if starred_only:
        filter_dict["starred"] = True
    comments = get_documents(db, COMMENTS, filter_dict, sort=[("created_at", -1)])
    for comment in comments:
        comment["replies"] = get_documents(db, REPLIES, {"comment_id": comment["id"]}, sort=[("created_at", 1)])
    return comments


def add_comment(db: Database, product_id: str, user: Optional[Dict[str, Any]], text: Optional[str], rating: Any) -> Dict[str, Any]:
    user = _require_user(user)
    if not product_id:
        raise ServiceError(INVALID_ARGUMENT, "Invalid product ID")
    comment = Comment(
        product_id=product_id,
        user_id=user["id"],
        user_name=user.get("display_name") or user.get("email"),
        text=_require_text(text, "Comment text"),
        rating=_rating(rating),
    )
    comment_id = create_document(db, COMMENTS, comment)
    logger.info("Comment %s added to product %s", comment_id, product_id)
    return {"success": True, "comment_id": comment_id}


def update_comment(db: Database, comment_id: str, user: Optional[Dict[str, Any]], text: Optional[str], rating: Any = None) -> Dict[str, Any]:
    doc = _find(db, COMMENTS, comment_id, "Comment")
    ensure_authorized(user, REQUIRE_OWNER_OR_ADMIN, owner_id=doc.get("user_id"), message="You can only edit your own comments")
    updates: Dict[str, Any] = {"text": _require_text(text, "Comment text"), "updated_at": utcnow()}
    if rating is not None:
        updates["rating"] = _rating(rating)
    db[COMMENTS].update_one({"_id": doc["_id"]}, {"$set": updates})
    return {"success": True}


def toggle_starred(db: Database, comment_id: str) -> Dict[str, Any]:
    doc = _find(db, COMMENTS, comment_id, "Comment")
    starred = not doc.get("starred", False)
    db[COMMENTS].update_one({"_id": doc["_id"]}, {"$set": {"starred": starred, "updated_at": utcnow()}})
    return {"success": True, "starred": starred}


def delete_comment(db: Database, comment_id: str, user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    doc = _find(db, COMMENTS, comment_id, "Comment")
    ensure_authorized(user, REQUIRE_OWNER_OR_ADMIN, owner_id=doc.get("user_id"), message="You can only delete your own comments")
    removed = db[REPLIES].delete_many({"comment_id": str(doc["_id"])}).deleted_count
    logger.info("Deleted %d replies for comment %s", removed, comment_id)
    # Replies stay deleted if this fails
    db[COMMENTS].delete_one({"_id": doc["_id"]})
    logger.info("Comment %s deleted", comment_id)
    return {"success": True, "deleted_replies": removed}


# Replies
def add_reply(db: Database, comment_id: str, user: Optional[Dict[str, Any]], text: Optional[str]) -> Dict[str, Any]:
    user = _require_user(user)
    parent = _find(db, COMMENTS, comment_id, "Comment")
    reply = Reply(
        comment_id=str(parent["_id"]),
        user_id=user["id"],
        user_name=user.get("display_name") or user.get("email"),
        text=_require_text(text, "Reply text"),
    )
    reply_id = create_document(db, REPLIES, reply)
    return {"success": True, "reply": {"id": reply_id, **reply.model_dump()}}


def update_reply(db: Database, reply_id: str, user: Optional[Dict[str, Any]], text: Optional[str]) -> Dict[str, Any]:
    doc = _find(db, REPLIES, reply_id, "Reply")
    ensure_authorized(user, REQUIRE_OWNER_OR_ADMIN, owner_id=doc.get("user_id"), message="You can only edit your own replies")
    db[REPLIES].update_one({"_id": doc["_id"]}, {"$set": {"text": _require_text(text, "Reply text"), "updated_at": utcnow()}})
    return {"success": True}


def delete_reply(db: Database, reply_id: str, user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    doc = _find(db, REPLIES, reply_id, "Reply")
    ensure_authorized(user, REQUIRE_OWNER_OR_ADMIN, owner_id=doc.get("user_id"), message="You can only delete your own replies")
    db[REPLIES].delete_one({"_id": doc["_id"]})
    return {"success": True}


# Questions
def list_questions(db: Database, product_id: str) -> List[Dict[str, Any]]:
    if not product_id:
        raise ServiceError(INVALID_ARGUMENT, "Invalid product ID")
    return get_documents(db, QUESTIONS, {"product_id": product_id}, sort=[("asked_at", -1)])


def ask_question(db: Database, product_id: str, user: Optional[Dict[str, Any]], text: Optional[str]) -> Dict[str, Any]:
    user = _require_user(user)
    if not product_id:
        raise ServiceError(INVALID_ARGUMENT, "Invalid product ID")
    question = Question(
        product_id=product_id,
        user_id=user["id"],
        user_name=user.get("display_name") or user.get("email"),
        question=_require_text(text, "Question text"),
        asked_at=utcnow(),
    )
    question_id = create_document(db, QUESTIONS, question)
    logger.info("Question %s asked on product %s", question_id, product_id)
    return {"success": True, "question": serialize_doc({"_id": question_id, **question.model_dump()})}


def answer_question(db: Database, question_id: str, user: Dict[str, Any], text: Optional[str]) -> Dict[str, Any]:
    answer = _require_text(text, "Answer text")
    answered_by = AnsweredBy(id=user["id"], name=user.get("display_name") or user.get("email"))
    # answer and answered are always written together
    doc = db[QUESTIONS].find_one_and_update(
        {"_id": to_object_id(question_id, "question")},
        {"$set": {
            "answer": answer,
            "answered": True,
            "answered_by": answered_by.model_dump(),
            "answered_at": utcnow(),
            "updated_at": utcnow(),
        }},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise ServiceError(NOT_FOUND, "Question not found")
    return {"success": True, "question": serialize_doc(doc)}


def _increment(db: Database, question_id: str, field: str) -> Dict[str, Any]:
    doc = db[QUESTIONS].find_one_and_update(
        {"_id": to_object_id(question_id, "question")},
        {"$inc": {field: 1}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise ServiceError(NOT_FOUND, "Question not found")
    return {"success": True, "question": serialize_doc(doc)}


def vote_helpful(db: Database, question_id: str) -> Dict[str, Any]:
    return _increment(db, question_id, "helpful_votes")


def report_question(db: Database, question_id: str) -> Dict[str, Any]:
    result = _increment(db, question_id, "report_count")
    logger.info("Question %s reported (%s total)", question_id, result["question"].get("report_count"))
    return result


def delete_question(db: Database, question_id: str, user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    doc = _find(db, QUESTIONS, question_id, "Question")
    ensure_authorized(user, REQUIRE_OWNER_OR_ADMIN, owner_id=doc.get("user_id"), message="You can only delete your own questions")
    db[QUESTIONS].delete_one({"_id": doc["_id"]})
    return {"success": True}
