"""
Shopping cart kept on the client.

`storage` is any string-to-string mapping standing in for the browser's local
storage; the whole line list is written under a single key after every change.
"""
import json
import logging
from typing import Any, Dict, List, MutableMapping, Optional

from pydantic import ValidationError

from schemas import CartLine

logger = logging.getLogger(__name__)

CART_KEY = "cart"

# old field name -> current field name
LEGACY_FIELDS = {"image_url": "main_image_url", "imageUrl": "main_image_url"}


def _migrate_line(line: Dict[str, Any]) -> bool:
    changed = False
    for old, new in LEGACY_FIELDS.items():
        if old in line:
            value = line.pop(old)
            line.setdefault(new, value)
            changed = True
    return changed


def _merge_lines(lines: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """One line per product id; quantities of repeated ids are summed."""
    merged: List[Dict[str, Any]] = []
    by_id: Dict[Any, Dict[str, Any]] = {}
    for line in lines:
        existing = by_id.get(line.get("id"))
        if existing is not None:
            existing["quantity"] = int(existing.get("quantity") or 0) + int(line.get("quantity") or 0)
            continue
        line = dict(line)
        by_id[line.get("id")] = line
        merged.append(line)
    return merged


class Cart:
    def __init__(self, storage: Optional[MutableMapping[str, str]] = None, items: Optional[List[Dict[str, Any]]] = None):
        self.storage = storage if storage is not None else {}
        self.items: List[Dict[str, Any]] = _merge_lines(items or [])
        self.total = self._compute_total()

    @classmethod
    def load(cls, storage: MutableMapping[str, str]) -> "Cart":
        raw = storage.get(CART_KEY)
        if not raw:
            return cls(storage)
        try:
            stored = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable cart data")
            return cls(storage)
        if not isinstance(stored, list):
            logger.warning("Discarding cart data that is not a list")
            return cls(storage)
        changed = False
        items = []
        for item in stored:
            if not isinstance(item, dict):
                changed = True
                continue
            changed = _migrate_line(item) or changed
            try:
                items.append(CartLine.model_validate(item).model_dump())
            except ValidationError:
                logger.warning("Discarding invalid cart line %r", item)
                changed = True
        cart = cls(storage, items)
        if changed or len(cart.items) != len(items):
            logger.info("Rewrote stored cart after cleanup")
            cart._save()
        return cart

    @classmethod
    def from_lines(cls, lines: List[Dict[str, Any]]) -> "Cart":
        """In-memory cart from lines a client sent, legacy fields included."""
        return cls.load({CART_KEY: json.dumps(lines)})

    @property
    def state(self) -> str:
        return "populated" if self.items else "empty"

    def _find(self, product_id: str) -> Optional[Dict[str, Any]]:
        for item in self.items:
            if item.get("id") == product_id:
                return item
        return None

    def _compute_total(self) -> float:
        return round(sum(float(i.get("price") or 0) * int(i.get("quantity") or 0) for i in self.items), 2)

    def _save(self) -> None:
        self.storage[CART_KEY] = json.dumps(self.items)

    def _changed(self) -> None:
        self.total = self._compute_total()
        self._save()

    def add(self, product: Dict[str, Any], quantity: int = 1) -> None:
        if quantity < 1:
            return
        line = self._find(product["id"])
        if line is not None:
            line["quantity"] = int(line.get("quantity") or 0) + quantity
        else:
            self.items.append(CartLine.model_validate({**product, "quantity": quantity}).model_dump())
        self._changed()

    def set_quantity(self, product_id: str, quantity: int) -> None:
        if quantity < 1:
            return
        line = self._find(product_id)
        if line is None:
            return
        line["quantity"] = quantity
        self._changed()

    def remove(self, product_id: str) -> None:
        self.items = [i for i in self.items if i.get("id") != product_id]
        self._changed()

    def clear(self) -> None:
        self.items = []
        self._changed()

    def quantities(self) -> Dict[str, int]:
        return {i["id"]: int(i.get("quantity") or 0) for i in self.items if i.get("id")}
