"""Price catalog - port and MongoDB adapter."""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from pymongo.errors import PyMongoError

from app.errors import StorageError
from app.models.pricing import PriceItem, RateTable
from app.utils.mongo import to_decimal

logger = logging.getLogger(__name__)


class PriceCatalog(ABC):
    """Read access to the default and customer-specific price lists."""

    @abstractmethod
    async def get_default_rate_table(self) -> RateTable:
        """The global price list, ordered by ``ordernum``."""

    @abstractmethod
    async def get_customer_rate_table(self, customer_id: str) -> Optional[RateTable]:
        """A customer's own price list, or None if it has none."""


class MongoPriceCatalog(PriceCatalog):
    """
    Price catalog backed by two collections.

    ``price_items`` holds the default list; ``customer_price_items`` holds
    overrides tagged with ``customer_id``.
    """

    def __init__(self, db):
        """Initialize catalog with database connection."""
        self.db = db
        self.price_items = db["price_items"]
        self.customer_price_items = db["customer_price_items"]

    def _doc_to_item(self, doc: dict) -> PriceItem:
        return PriceItem(
            _id=str(doc["_id"]),
            name=doc.get("name", ""),
            hourly_rate=to_decimal(doc.get("hourly_rate")),
            daily_rate=to_decimal(doc.get("daily_rate")),
            ordernum=doc.get("ordernum", 0),
        )

    async def _load(self, collection, query: dict) -> list[PriceItem]:
        try:
            cursor = collection.find(query).sort("ordernum", 1)
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error("Failed to load price items %s: %s", query, e)
            raise StorageError(str(e)) from e
        return [self._doc_to_item(doc) for doc in docs]

    async def get_default_rate_table(self) -> RateTable:
        items = await self._load(self.price_items, {})
        return RateTable(items=items)

    async def get_customer_rate_table(self, customer_id: str) -> Optional[RateTable]:
        items = await self._load(self.customer_price_items, {"customer_id": customer_id})
        if not items:
            logger.debug("No customer-specific price list for customer %s", customer_id)
            return None
        return RateTable(customer_id=customer_id, items=items)
