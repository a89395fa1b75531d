"""
Order engine: checkout, order lookup and back-office order management.

Placing an order validates every cart line against current stock, prices the
cart from the catalog, then reserves stock line by line with conditional
decrements before the order document is written. A failed reservation or a
failed insert gives back whatever was already reserved, so the catalog never
ends up oversold and no order exists without its stock taken.
"""
import logging
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import stock as stock_lines
from catalog import Catalog, page_window
from database import create_document, get_documents, now_utc, serialize, to_object_id
from errors import NotFoundError, ValidationError
from schemas import DEFAULT_COLOR, CreateOrderPayload, Order, OrderItem
from settings import FREE_SHIPPING_ABOVE, SHIPPING_CHARGE

logger = logging.getLogger(__name__)

BASE36_DIGITS = string.digits + string.ascii_lowercase
STATUS_FLOW = ["pending", "confirmed", "processing", "shipped", "delivered"]
PRODUCT_REF_FIELDS = {"name": 1, "sku": 1, "images": 1}
ORDER_NUMBER_ATTEMPTS = 3


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def generate_order_number(timestamp_ms: Optional[int] = None) -> str:
    """ORD-<base36 millis>-<4 random base36 chars>, uppercased."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(BASE36_DIGITS) for _ in range(4))
    return f"ORD-{to_base36(timestamp_ms)}-{suffix}".upper()


def compute_totals(
    subtotal: float,
    free_shipping_above: float = FREE_SHIPPING_ABOVE,
    shipping_charge: float = SHIPPING_CHARGE,
) -> Tuple[float, float]:
    """Return (shipping_charges, total) for a cart subtotal."""
    shipping = 0.0 if subtotal > free_shipping_above else float(shipping_charge)
    return shipping, round(subtotal + shipping, 2)


def can_change_status(current: str, new: str) -> bool:
    """Orders move forward along STATUS_FLOW, or get cancelled before delivery."""
    if current == new:
        return True
    if current in ("delivered", "cancelled"):
        return False
    if new == "cancelled":
        return True
    return STATUS_FLOW.index(new) > STATUS_FLOW.index(current)


def insufficient_stock(name: str, size: str, color: str, available: int) -> ValidationError:
    return ValidationError(
        f"Insufficient stock for {name} - Size: {size}, Color: {color}. Available: {available}"
    )


class OrderEngine:
    def __init__(
        self,
        db: Database,
        catalog: Catalog,
        free_shipping_above: float = FREE_SHIPPING_ABOVE,
        shipping_charge: float = SHIPPING_CHARGE,
    ):
        self.db = db
        self.catalog = catalog
        self.free_shipping_above = free_shipping_above
        self.shipping_charge = shipping_charge

    # ---------------- Checkout ----------------

    def place_order(self, payload: CreateOrderPayload) -> dict:
        if not payload.items:
            raise ValidationError("Order must have at least one item")

        order_items: List[OrderItem] = []
        subtotal = 0.0
        for item in payload.items:
            color = item.color or DEFAULT_COLOR
            try:
                product = self.catalog.find_product(item.product_id, active_only=True)
            except NotFoundError:
                raise NotFoundError(f"Product {item.product_id} not found or inactive")

            available = stock_lines.get_stock(product.get("stock", []), item.size, color)
            if available < item.quantity:
                raise insufficient_stock(product["name"], item.size, color, available)

            images = product.get("images") or []
            order_items.append(OrderItem(
                product_id=str(product["_id"]),
                name=product["name"],
                sku=product["sku"],
                price=float(product["price"]),
                size=item.size,
                color=color,
                quantity=item.quantity,
                image=images[0] if images else "",
            ))
            subtotal += float(product["price"]) * item.quantity

        subtotal = round(subtotal, 2)
        shipping, total = compute_totals(subtotal, self.free_shipping_above, self.shipping_charge)

        reserved = self._reserve(order_items)
        try:
            order_id = self._insert_order(payload, order_items, subtotal, shipping, total)
        except Exception:
            self._release(reserved)
            raise

        view = self._order_view(self.db["order"].find_one({"_id": to_object_id(order_id)}))
        logger.info("Order placed: %s (%d lines, total %.2f)", view["order_number"], len(order_items), total)
        return view

    def _insert_order(self, payload, items, subtotal, shipping, total) -> str:
        pickup_time = payload.pickup_time if payload.delivery_type == "store-pickup" else None
        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            order = Order(
                order_number=generate_order_number(),
                items=items,
                shipping_address=payload.shipping_address,
                delivery_type=payload.delivery_type,
                pickup_time=pickup_time,
                subtotal=subtotal,
                shipping_charges=shipping,
                total=total,
                notes=payload.notes or "",
            )
            try:
                return create_document(self.db, "order", order)
            except DuplicateKeyError:
                if attempt == ORDER_NUMBER_ATTEMPTS:
                    raise
                logger.warning("Order number %s already taken; regenerating", order.order_number)

    def _reserve(self, items: List[OrderItem]) -> List[OrderItem]:
        reserved: List[OrderItem] = []
        try:
            for item in items:
                if not self.catalog.reserve_stock(item.product_id, item.size, item.color, item.quantity):
                    available = self.catalog.get_stock(item.product_id, item.size, item.color)
                    logger.info("Reservation refused for %s %s/%s", item.sku, item.size, item.color)
                    raise insufficient_stock(item.name, item.size, item.color, available)
                reserved.append(item)
        except Exception:
            self._release(reserved)
            raise
        return reserved

    def _release(self, reserved: List[OrderItem]) -> None:
        for item in reversed(reserved):
            try:
                self.catalog.release_stock(item.product_id, item.size, item.color, item.quantity)
            except Exception:
                logger.exception("Could not release %s x%d for %s", item.sku, item.quantity, item.size)

    # ---------------- Lookup ----------------

    def _product_refs(self, docs: List[dict]) -> Dict[str, dict]:
        ids = {item["product_id"] for doc in docs for item in doc.get("items", [])}
        oids = [to_object_id(i) for i in ids]
        if not oids:
            return {}
        refs = self.db["product"].find({"_id": {"$in": oids}}, PRODUCT_REF_FIELDS)
        return {str(ref["_id"]): serialize(ref) for ref in refs}

    def _order_view(self, doc: dict, refs: Optional[Dict[str, dict]] = None) -> dict:
        if refs is None:
            refs = self._product_refs([doc])
        view = serialize(doc)
        for item in view.get("items", []):
            item["product"] = refs.get(item["product_id"], {"_id": item["product_id"]})
        return view

    def get_order(self, order_number: str) -> dict:
        doc = self.db["order"].find_one({"order_number": order_number})
        if not doc:
            raise NotFoundError("Order not found")
        return self._order_view(doc)

    def _find_order(self, order_id: Any) -> dict:
        doc = self.db["order"].find_one({"_id": to_object_id(order_id, "Order")})
        if not doc:
            raise NotFoundError("Order not found")
        return doc

    # ---------------- Back office ----------------

    def list_orders(
        self,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[dict], int]:
        query: Dict[str, Any] = {}
        if status:
            query["status"] = status
        if start_date or end_date:
            created = {}
            if start_date:
                created["$gte"] = _as_utc(start_date)
            if end_date:
                created["$lte"] = _as_utc(end_date)
            query["created_at"] = created
        skip, limit = page_window(page, limit)
        docs = get_documents(self.db, "order", query, limit=limit, skip=skip, sort=[("created_at", -1)])
        total = self.db["order"].count_documents(query)
        refs = self._product_refs(docs)
        return [self._order_view(d, refs) for d in docs], total

    def update_order(
        self,
        order_id: str,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> dict:
        doc = self._find_order(order_id)
        updates: Dict[str, Any] = {}
        if status:
            if not can_change_status(doc["status"], status):
                raise ValidationError(f"Cannot change order status from {doc['status']} to {status}")
            updates["status"] = status
        if payment_status:
            updates["payment_status"] = payment_status
        if notes is not None:
            updates["notes"] = notes
        if updates:
            updates["updated_at"] = now_utc()
            self.db["order"].update_one({"_id": doc["_id"]}, {"$set": updates})
            logger.info("Order %s updated: %s", doc["order_number"], sorted(updates))
        return self._order_view(self._find_order(doc["_id"]))

    def order_stats(self) -> dict:
        orders = self.db["order"]
        revenue = list(orders.aggregate([
            {"$match": {"payment_status": "paid"}},
            {"$group": {"_id": None, "total": {"$sum": "$total"}}},
        ]))
        return {
            "total_orders": orders.count_documents({}),
            "pending_orders": orders.count_documents({"status": "pending"}),
            "completed_orders": orders.count_documents({"status": "delivered"}),
            "total_revenue": round(revenue[0]["total"], 2) if revenue else 0,
        }


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
