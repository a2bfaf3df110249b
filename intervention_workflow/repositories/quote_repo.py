"""Quote Repository - Data access for intervention quotes"""
from typing import Any, Dict, List, Optional
from pymongo import ASCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection, to_document
from ..domain.models import Quote
from ..domain.enums import QuoteStatus
from ..domain.errors import QuoteNotFoundError, InvalidStateError, ConflictError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class QuoteRepository:
    """Repository for quote operations"""

    def __init__(self):
        self._quotes: Collection = get_collection("intervention_quotes")

    def create_quote(self, quote: Quote) -> Quote:
        """Create a pending quote"""
        self._quotes.insert_one(to_document(quote, quote.quote_id))
        logger.info(
            f"Created quote {quote.quote_id} for provider {quote.provider_id}",
            extra={"intervention_id": quote.intervention_id, "quote_id": quote.quote_id}
        )
        return quote

    def delete_quote(self, quote_id: str) -> None:
        """Remove a quote whose intervention write did not go through"""
        self._quotes.delete_one({"quote_id": quote_id, "status": QuoteStatus.PENDING.value})

    def get_quote(self, quote_id: str) -> Optional[Quote]:
        """Get quote by ID"""
        doc = self._quotes.find_one({"quote_id": quote_id})
        if doc:
            doc.pop("_id", None)
            return Quote.model_validate(doc)
        return None

    def get_quote_or_raise(self, quote_id: str) -> Quote:
        """Get quote by ID or raise error"""
        quote = self.get_quote(quote_id)
        if not quote:
            raise QuoteNotFoundError(f"Quote {quote_id} not found")
        return quote

    def get_quotes_for_intervention(
        self,
        intervention_id: str,
        statuses: Optional[List[QuoteStatus]] = None
    ) -> List[Quote]:
        """Get quotes for an intervention, oldest first"""
        query: Dict[str, Any] = {"intervention_id": intervention_id}
        if statuses:
            query["status"] = {"$in": [s.value for s in statuses]}

        quotes = []
        for doc in self._quotes.find(query).sort("created_at", ASCENDING):
            doc.pop("_id", None)
            quotes.append(Quote.model_validate(doc))
        return quotes

    def has_open_quote(self, intervention_id: str, provider_id: str) -> bool:
        """Provider already holds a pending or accepted quote"""
        return self._quotes.count_documents({
            "intervention_id": intervention_id,
            "provider_id": provider_id,
            "status": {"$in": [QuoteStatus.PENDING.value, QuoteStatus.ACCEPTED.value]}
        }, limit=1) > 0

    def update_quote(
        self,
        quote_id: str,
        expected_status: QuoteStatus,
        updates: Dict[str, Any]
    ) -> Quote:
        """
        Update a quote guarded on its current status.

        Raises:
            InvalidStateError: quote is no longer in expected_status
            ConflictError: another quote of the intervention is already accepted
            QuoteNotFoundError: quote does not exist
        """
        updates["updated_at"] = utc_now()
        try:
            result = self._quotes.find_one_and_update(
                {"quote_id": quote_id, "status": expected_status.value},
                {"$set": updates},
                return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            raise ConflictError(
                "Another quote has already been accepted for this intervention",
                details={"quote_id": quote_id}
            )

        if result is None:
            current = self.get_quote_or_raise(quote_id)
            raise InvalidStateError(
                f"Quote {quote_id} is {current.status.value}, expected {expected_status.value}",
                details={"quote_id": quote_id, "status": current.status.value}
            )

        result.pop("_id", None)
        return Quote.model_validate(result)

    def cancel_pending_quotes(self, intervention_id: str, reason: str) -> int:
        """Cancel every pending quote of an intervention"""
        now = utc_now()
        result = self._quotes.update_many(
            {"intervention_id": intervention_id, "status": QuoteStatus.PENDING.value},
            {"$set": {
                "status": QuoteStatus.CANCELLED.value,
                "cancel_reason": reason,
                "decided_at": now,
                "updated_at": now
            }}
        )
        if result.modified_count:
            logger.info(
                f"Cancelled {result.modified_count} pending quotes ({reason})",
                extra={"intervention_id": intervention_id}
            )
        return result.modified_count
