"""
Catalog: schools, products and product stock.

The catalog is the only place that writes product documents. Stock writes are
compare-and-set updates keyed on the stock array that was read, so two writers
never silently overwrite each other's changes.
"""
import logging
import math
import re
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo.database import Database

import stock as stock_lines
from database import create_document, get_documents, now_utc, serialize, to_object_id
from errors import NotFoundError, ValidationError
from schemas import DEFAULT_COLOR, Lifecycle, Product, School
from settings import LOW_STOCK_THRESHOLD

logger = logging.getLogger(__name__)

ACTIVE = Lifecycle.ACTIVE.value
RETIRED = Lifecycle.RETIRED.value

SCHOOL_REF_FIELDS = {"name": 1, "slug": 1, "logo": 1, "color": 1}
MAX_STOCK_RETRIES = 5


def slugify(name: str) -> str:
    """'St. Mary's  School!' -> 'st-marys-school'. Idempotent on its own output."""
    slug = name.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug, flags=re.ASCII)
    slug = re.sub(r"[\s_-]+", "-", slug, flags=re.ASCII)
    return slug.strip("-")


def page_window(page: int, limit: int) -> Tuple[int, int]:
    page = max(1, int(page))
    limit = max(1, int(limit))
    return (page - 1) * limit, limit


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / max(1, int(limit)))


class Catalog:
    def __init__(self, db: Database, low_stock_threshold: int = LOW_STOCK_THRESHOLD):
        self.db = db
        self.low_stock_threshold = low_stock_threshold

    # ---------------- Schools ----------------

    @staticmethod
    def _school_view(doc: dict) -> dict:
        view = serialize(doc)
        view["is_active"] = doc.get("lifecycle") == ACTIVE
        return view

    def _find_school(self, school_id: Any) -> dict:
        doc = self.db["school"].find_one({"_id": to_object_id(school_id, "School")})
        if not doc:
            raise NotFoundError("School not found")
        return doc

    def list_schools(self) -> List[dict]:
        docs = get_documents(self.db, "school", {"lifecycle": ACTIVE}, sort=[("name", 1)])
        return [self._school_view(d) for d in docs]

    def list_schools_with_stats(self) -> List[dict]:
        docs = get_documents(self.db, "school", {}, sort=[("name", 1)])
        views = []
        for doc in docs:
            view = self._school_view(doc)
            view["product_count"] = self.db["product"].count_documents(
                {"school": doc["_id"], "lifecycle": ACTIVE}
            )
            views.append(view)
        return views

    def get_school(self, id_or_slug: str) -> dict:
        """Active school by id or by slug."""
        matches: List[Dict[str, Any]] = [{"slug": id_or_slug}]
        if ObjectId.is_valid(id_or_slug):
            matches.append({"_id": ObjectId(id_or_slug)})
        doc = self.db["school"].find_one({"$or": matches, "lifecycle": ACTIVE})
        if not doc:
            raise NotFoundError("School not found")
        return self._school_view(doc)

    def create_school(self, data: dict) -> dict:
        name = (data.get("name") or "").strip()
        slug = slugify(name)
        if not slug:
            raise ValidationError("School name must contain letters or digits")
        school = School(**{**data, "name": name, "slug": slug})
        school_id = create_document(self.db, "school", school)
        logger.info("School created: %s (%s)", name, slug)
        return self._school_view(self._find_school(school_id))

    def update_school(self, school_id: str, data: dict) -> dict:
        doc = self._find_school(school_id)
        updates = {k: v for k, v in data.items() if k not in ("slug", "lifecycle")}
        if "name" in updates:
            updates["name"] = (updates["name"] or "").strip()
            if updates["name"] != doc["name"]:
                updates["slug"] = slugify(updates["name"])
                if not updates["slug"]:
                    raise ValidationError("School name must contain letters or digits")
        # validate the merged document before writing
        School(**{**doc, **updates})
        updates["updated_at"] = now_utc()
        self.db["school"].update_one({"_id": doc["_id"]}, {"$set": updates})
        return self._school_view(self._find_school(doc["_id"]))

    def delete_school(self, school_id: str) -> None:
        """Retire a school. Refused while any active product still references it."""
        doc = self._find_school(school_id)
        product_count = self.db["product"].count_documents({"school": doc["_id"], "lifecycle": ACTIVE})
        if product_count > 0:
            raise ValidationError(
                f"Cannot delete school. It has {product_count} associated products. "
                "Please remove or reassign products first."
            )
        self.db["school"].update_one(
            {"_id": doc["_id"]}, {"$set": {"lifecycle": RETIRED, "updated_at": now_utc()}}
        )
        logger.info("School retired: %s", doc["_id"])

    # ---------------- Products ----------------

    def _school_ref(self, value: Optional[str]) -> Optional[ObjectId]:
        if not value:
            return None
        oid = to_object_id(value, "School")
        if not self.db["school"].find_one({"_id": oid}, {"_id": 1}):
            raise NotFoundError("School not found")
        return oid

    def _schools_by_id(self, docs: List[dict]) -> Dict[ObjectId, dict]:
        ids = list({d["school"] for d in docs if d.get("school")})
        if not ids:
            return {}
        refs = self.db["school"].find({"_id": {"$in": ids}}, SCHOOL_REF_FIELDS)
        return {ref["_id"]: serialize(ref) for ref in refs}

    def _product_view(self, doc: dict, schools: Dict[ObjectId, dict]) -> dict:
        view = serialize(doc)
        school_id = doc.get("school")
        if school_id:
            view["school"] = schools.get(school_id, {"_id": str(school_id)})
        view["is_active"] = doc.get("lifecycle") == ACTIVE
        view["is_out_of_stock"] = stock_lines.is_out_of_stock(doc.get("stock", []))
        price, original = doc.get("price", 0), doc.get("original_price")
        view["discount_percent"] = (
            round((original - price) / original * 100) if original and original > price else 0
        )
        return view

    def _public_view(self, doc: dict, schools: Dict[ObjectId, dict]) -> dict:
        """Product as shown to shoppers: availability per variant, never quantities."""
        view = self._product_view(doc, schools)
        view["stock_status"] = stock_lines.stock_status(doc.get("stock", []))
        view.pop("stock", None)
        view.pop("low_stock_alert", None)
        return view

    def _views(self, docs: List[dict], public: bool) -> List[dict]:
        schools = self._schools_by_id(docs)
        render = self._public_view if public else self._product_view
        return [render(d, schools) for d in docs]

    def _stock_flags(self, lines: List[dict]) -> dict:
        return {
            "low_stock_alert": stock_lines.low_stock_alert(lines, self.low_stock_threshold),
            "is_out_of_stock": stock_lines.is_out_of_stock(lines),
        }

    @staticmethod
    def _product_query(
        school: Optional[str] = None,
        category: Optional[str] = None,
        institution: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
    ) -> dict:
        query: Dict[str, Any] = {}
        if school:
            # a malformed id simply matches nothing
            query["school"] = ObjectId(school) if ObjectId.is_valid(school) else school
        if category:
            query["category"] = category
        if institution:
            query["institution"] = institution
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{"name": pattern}, {"description": pattern}, {"sku": pattern}]
        if min_price is not None or max_price is not None:
            price_filter = {}
            if min_price is not None:
                price_filter["$gte"] = float(min_price)
            if max_price is not None:
                price_filter["$lte"] = float(max_price)
            query["price"] = price_filter
        return query

    def _page(self, query: dict, page: int, limit: int, public: bool) -> Tuple[List[dict], int]:
        skip, limit = page_window(page, limit)
        docs = get_documents(self.db, "product", query, limit=limit, skip=skip, sort=[("created_at", -1)])
        total = self.db["product"].count_documents(query)
        return self._views(docs, public), total

    def list_products(self, page: int = 1, limit: int = 20, **filters) -> Tuple[List[dict], int]:
        """Active products for the storefront, newest first."""
        query = self._product_query(**filters)
        query["lifecycle"] = ACTIVE
        return self._page(query, page, limit, public=True)

    def list_admin_products(
        self,
        page: int = 1,
        limit: int = 50,
        low_stock: bool = False,
        out_of_stock: bool = False,
        **filters,
    ) -> Tuple[List[dict], int]:
        query = self._product_query(**filters)
        if low_stock:
            query["low_stock_alert"] = True
        if out_of_stock:
            query["is_out_of_stock"] = True
        return self._page(query, page, limit, public=False)

    def find_product(self, product_id: Any, active_only: bool = False) -> dict:
        doc = self.db["product"].find_one({"_id": to_object_id(product_id, "Product")})
        if not doc or (active_only and doc.get("lifecycle") != ACTIVE):
            raise NotFoundError("Product not found")
        return doc

    def get_public_product(self, product_id: str) -> dict:
        doc = self.find_product(product_id, active_only=True)
        return self._views([doc], public=True)[0]

    def get_product(self, product_id: str) -> dict:
        doc = self.find_product(product_id)
        return self._views([doc], public=False)[0]

    def create_product(self, data: dict) -> dict:
        product = Product(**data)
        doc = product.model_dump()
        doc["school"] = self._school_ref(product.school)
        doc.update(self._stock_flags(doc["stock"]))
        product_id = create_document(self.db, "product", doc)
        logger.info("Product created: %s (%s)", product.sku, product_id)
        return self.get_product(product_id)

    def update_product(self, product_id: str, data: dict) -> dict:
        doc = self.find_product(product_id)
        current = {**doc, "school": str(doc["school"]) if doc.get("school") else None}
        # validates the merged document, including school/institution exclusivity
        merged = Product(**{**current, **data})
        updates = {k: getattr(merged, k) for k in data if k in Product.model_fields}
        if "school" in updates:
            updates["school"] = self._school_ref(merged.school)
        if "stock" in updates:
            updates["stock"] = [line.model_dump() for line in merged.stock]
            updates.update(self._stock_flags(updates["stock"]))
        updates["updated_at"] = now_utc()
        self.db["product"].update_one({"_id": doc["_id"]}, {"$set": updates})
        return self.get_product(doc["_id"])

    def delete_product(self, product_id: str) -> None:
        doc = self.find_product(product_id)
        self.db["product"].update_one(
            {"_id": doc["_id"]}, {"$set": {"lifecycle": RETIRED, "updated_at": now_utc()}}
        )
        logger.info("Product retired: %s", doc.get("sku"))

    # ---------------- Stock ----------------

    def _mutate_stock(self, product_id: Any, change, active_only: bool = False) -> Optional[dict]:
        """Apply ``change(lines) -> new lines | None`` to a product's stock atomically.

        The write only lands if the stock array is still the one that was read;
        otherwise the product is re-read and the change re-applied. A ``None``
        from ``change`` aborts without writing and returns ``None``. With
        ``active_only`` a retired product is a NotFoundError.
        """
        oid = to_object_id(product_id, "Product")
        for _ in range(MAX_STOCK_RETRIES):
            doc = self.find_product(oid, active_only=active_only)
            lines = doc.get("stock", [])
            new_lines = change(lines)
            if new_lines is None:
                return None
            guard = {"_id": oid, "stock": lines} if "stock" in doc else {"_id": oid, "stock": {"$exists": False}}
            updates = {"stock": new_lines, "updated_at": now_utc(), **self._stock_flags(new_lines)}
            result = self.db["product"].update_one(guard, {"$set": updates})
            if result.matched_count == 1:
                return {**doc, **updates}
            logger.info("Stock of product %s changed concurrently; retrying", oid)
        raise ValidationError("Stock is being updated by another request, please retry")

    def get_stock(self, product_id: Any, size: str, color: str = DEFAULT_COLOR) -> int:
        return stock_lines.get_stock(self.find_product(product_id).get("stock", []), size, color)

    def set_stock(self, product_id: Any, size: str, color: str, quantity: int) -> dict:
        doc = self._mutate_stock(
            product_id, lambda lines: stock_lines.with_quantity(lines, size, color, quantity)
        )
        logger.info("Stock set: product=%s size=%s color=%s quantity=%s", product_id, size, color, max(0, quantity))
        return self._views([doc], public=False)[0]

    def reduce_stock(self, product_id: Any, size: str, color: str, quantity: int) -> dict:
        """Take stock off a variant, clamping at zero. Missing variant is a NotFoundError."""
        doc = self._mutate_stock(
            product_id, lambda lines: stock_lines.reduced(lines, size, color, quantity)
        )
        return self._views([doc], public=False)[0]

    def reserve_stock(self, product_id: Any, size: str, color: str, quantity: int) -> bool:
        """Decrement a variant only if it still holds ``quantity``. Returns False otherwise."""
        def take(lines):
            if stock_lines.get_stock(lines, size, color) < quantity:
                return None
            return stock_lines.reduced(lines, size, color, quantity)

        return self._mutate_stock(product_id, take, active_only=True) is not None

    def release_stock(self, product_id: Any, size: str, color: str, quantity: int) -> None:
        """Give back a reservation made by ``reserve_stock``."""
        self._mutate_stock(
            product_id,
            lambda lines: stock_lines.with_quantity(
                lines, size, color, stock_lines.get_stock(lines, size, color) + quantity
            ),
        )
        logger.info("Stock released: product=%s size=%s color=%s quantity=%s", product_id, size, color, quantity)
