"""Pricing service - rate table resolution and rate lookup."""
import logging
from decimal import Decimal
from typing import Mapping, Optional

from app.models.pricing import RateLookup, RateTable
from app.models.time_entry import TimeEntry
from app.repositories.price_catalog import PriceCatalog

logger = logging.getLogger(__name__)


def resolve_rate_table(
    customer_id: Optional[str],
    default_table: RateTable,
    customer_tables: Mapping[str, RateTable],
) -> RateTable:
    """
    Pick the price list that applies to a customer.

    Most customers have no override, so a missing or empty customer
    table silently falls back to the default table.

    Args:
        customer_id: Customer owning the project (may be None)
        default_table: Global price list
        customer_tables: Customer price lists keyed by customer ID

    Returns:
        The customer's table if present and non-empty, else the default
    """
    if customer_id:
        table = customer_tables.get(customer_id)
        if table is not None and table.items:
            return table
    return default_table


def find_rate(price_item_id: str, table: RateTable) -> RateLookup:
    """Look up an hourly rate, reporting whether the item was listed."""
    item = table.find(price_item_id)
    if item is None:
        return RateLookup(rate=Decimal(0), found=False)
    return RateLookup(rate=item.hourly_rate, found=True)


def lookup_rate(price_item_id: str, table: RateTable) -> Decimal:
    """
    Hourly rate of a price item, 0 if the item is not in the table.

    A listed item with a zero rate (non-billable work) returns the same
    value; use ``find_rate`` to tell the two apart.
    """
    return find_rate(price_item_id, table).rate


def effective_rate(entry: TimeEntry, table: RateTable) -> Decimal:
    """Rate stored on the entry if any, otherwise the catalog rate."""
    if entry.hourly_rate is not None:
        return entry.hourly_rate
    return lookup_rate(entry.price_item_id, table)


class PricingService:
    """Loads price lists through the catalog and resolves them per customer."""

    def __init__(self, catalog: PriceCatalog):
        """Initialize service with a price catalog."""
        self.catalog = catalog

    async def rate_table_for_customer(self, customer_id: Optional[str]) -> RateTable:
        """
        Get the price list that applies to a customer.

        Args:
            customer_id: Customer ID, or None for projects without a customer

        Returns:
            Resolved rate table
        """
        default_table = await self.catalog.get_default_rate_table()

        customer_tables = {}
        if customer_id:
            customer_table = await self.catalog.get_customer_rate_table(customer_id)
            if customer_table is not None:
                customer_tables[customer_id] = customer_table

        table = resolve_rate_table(customer_id, default_table, customer_tables)
        logger.debug(
            "Using %s price list for customer %s",
            "customer" if table.customer_id else "default",
            customer_id,
        )
        return table
