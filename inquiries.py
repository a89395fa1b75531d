"""Corporate inquiries submitted from the storefront and worked in the back office."""
import logging
from typing import List, Optional, Tuple

from pymongo.database import Database

from catalog import page_window
from database import create_document, get_documents, now_utc, serialize, to_object_id
from errors import NotFoundError, ValidationError
from schemas import CorporateInquiry

logger = logging.getLogger(__name__)

STATUS_FLOW = ["new", "contacted", "quoted", "converted"]


def can_change_status(current: str, new: str) -> bool:
    # "closed" is reachable from anywhere and final
    if current == new:
        return True
    if current == "closed":
        return False
    if new == "closed":
        return True
    return STATUS_FLOW.index(new) > STATUS_FLOW.index(current)


class Inquiries:
    def __init__(self, db: Database):
        self.db = db

    def _find(self, inquiry_id) -> dict:
        doc = self.db["corporateinquiry"].find_one({"_id": to_object_id(inquiry_id, "Inquiry")})
        if not doc:
            raise NotFoundError("Inquiry not found")
        return doc

    def create_inquiry(self, inquiry: CorporateInquiry) -> dict:
        # new inquiries always start at the beginning of the pipeline
        inquiry = inquiry.model_copy(update={"status": "new", "notes": ""})
        inquiry_id = create_document(self.db, "corporateinquiry", inquiry)
        logger.info("Corporate inquiry from %s (%s)", inquiry.company_name, inquiry_id)
        return serialize(self._find(inquiry_id))

    def list_inquiries(self, status: Optional[str] = None, page: int = 1, limit: int = 50) -> Tuple[List[dict], int]:
        query = {"status": status} if status else {}
        skip, limit = page_window(page, limit)
        docs = get_documents(self.db, "corporateinquiry", query, limit=limit, skip=skip, sort=[("created_at", -1)])
        return [serialize(d) for d in docs], self.db["corporateinquiry"].count_documents(query)

    def get_inquiry(self, inquiry_id: str) -> dict:
        return serialize(self._find(inquiry_id))

    def update_inquiry(self, inquiry_id: str, status: Optional[str] = None, notes: Optional[str] = None) -> dict:
        doc = self._find(inquiry_id)
        updates = {}
        if status:
            if not can_change_status(doc["status"], status):
                raise ValidationError(f"Cannot change inquiry status from {doc['status']} to {status}")
            updates["status"] = status
        if notes is not None:
            updates["notes"] = notes
        if updates:
            updates["updated_at"] = now_utc()
            self.db["corporateinquiry"].update_one({"_id": doc["_id"]}, {"$set": updates})
        return serialize(self._find(doc["_id"]))

    def inquiry_stats(self) -> dict:
        inquiries = self.db["corporateinquiry"]
        return {
            "total": inquiries.count_documents({}),
            "new_inquiries": inquiries.count_documents({"status": "new"}),
            "contacted": inquiries.count_documents({"status": "contacted"}),
            "converted": inquiries.count_documents({"status": "converted"}),
        }
