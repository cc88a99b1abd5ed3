"""Valuation service - monetary effort and budget usage."""
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from app.models.pricing import RateTable
from app.models.time_entry import TimeEntry
from app.models.usage import DaySummary, HoursBreakdown, PriceItemHours, UsageResult, UserHours
from app.repositories.entry_repository import EntryRepository
from app.repositories.project_repository import MongoProjectRepository
from app.services.pricing_service import PricingService, effective_rate
from app.utils.duration import format_for_display, hours_from_seconds

UNKNOWN_PRICE_ITEM_NAME = "Unknown service"


def valuation_hours(entry: TimeEntry) -> Decimal:
    """
    Hours an entry contributes to running totals.

    A running timer adds its last synchronised seconds, unquantized, so
    totals reflect work in progress.
    """
    if entry.is_active and entry.timer_seconds:
        return entry.hours + hours_from_seconds(entry.timer_seconds)
    return entry.hours


def entry_value(entry: TimeEntry, table: RateTable) -> Decimal:
    """Monetary value of one entry."""
    return valuation_hours(entry) * effective_rate(entry, table)


def compute_usage(
    entries: Iterable[TimeEntry],
    table: RateTable,
    budget: Decimal,
) -> UsageResult:
    """
    Sum the value of entries and compare it against a budget.

    Callers filter the entries (by project, task, date); nothing is
    filtered here.

    Any spend against a zero budget counts as fully over budget.

    Args:
        entries: Entries to value
        table: Resolved price list
        budget: Budget ceiling

    Returns:
        Usage result with percentage capped at 100
    """
    budget = Decimal(budget)
    total_value = sum((entry_value(entry, table) for entry in entries), Decimal(0))

    if budget > 0:
        percentage = min(Decimal(100), total_value / budget * 100)
        is_over_budget = total_value > budget
    elif total_value > 0:
        percentage = Decimal(100)
        is_over_budget = True
    else:
        percentage = Decimal(0)
        is_over_budget = False

    return UsageResult(
        total_value=total_value,
        budget=budget,
        percentage=percentage,
        is_over_budget=is_over_budget,
    )


def total_hours(entries: Iterable[TimeEntry]) -> Decimal:
    """Sum of valuation hours."""
    return sum((valuation_hours(entry) for entry in entries), Decimal(0))


def hours_on(entries: Iterable[TimeEntry], day: date) -> Decimal:
    """Hours booked on a billing day."""
    return total_hours(entry for entry in entries if entry.date == day)


def week_bounds(day: date) -> tuple[date, date]:
    """Monday and Sunday of the ISO week containing ``day``."""
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def weekly_hours(entries: Iterable[TimeEntry], day: date) -> Decimal:
    """Hours booked in the Monday-to-Sunday week containing ``day``."""
    monday, sunday = week_bounds(day)
    return total_hours(entry for entry in entries if monday <= entry.date <= sunday)


def summarize_day(entries: list[TimeEntry], day: date) -> DaySummary:
    """Day and week totals with display strings."""
    day_hours = hours_on(entries, day)
    week_hours = weekly_hours(entries, day)
    return DaySummary(
        day_hours=day_hours,
        week_hours=week_hours,
        day_display=format_for_display(day_hours),
        week_display=format_for_display(week_hours),
    )


def hours_breakdown(entries: Iterable[TimeEntry], table: RateTable) -> HoursBreakdown:
    """
    Group hours and value by price item and by user.

    Price items missing from the table are listed by ID with the
    placeholder name and a zero rate.
    """
    by_item: dict[str, PriceItemHours] = {}
    by_user: dict[str, UserHours] = {}

    for entry in entries:
        hours = valuation_hours(entry)
        rate = effective_rate(entry, table)
        value = hours * rate

        item_group = by_item.get(entry.price_item_id)
        if item_group is None:
            item = table.find(entry.price_item_id)
            item_group = PriceItemHours(
                price_item_id=entry.price_item_id,
                price_item_name=item.name if item else UNKNOWN_PRICE_ITEM_NAME,
                hourly_rate=rate,
            )
            by_item[entry.price_item_id] = item_group
        item_group.hours += hours
        item_group.value += value
        item_group.user_hours[entry.user_id] = item_group.user_hours.get(entry.user_id, Decimal(0)) + hours
        item_group.user_values[entry.user_id] = item_group.user_values.get(entry.user_id, Decimal(0)) + value

        user_group = by_user.setdefault(entry.user_id, UserHours(user_id=entry.user_id))
        user_group.hours += hours
        user_group.value += value
        user_group.price_item_hours[entry.price_item_id] = (
            user_group.price_item_hours.get(entry.price_item_id, Decimal(0)) + hours
        )

    return HoursBreakdown(
        by_price_item=list(by_item.values()),
        by_user=list(by_user.values()),
        total_hours=sum((group.hours for group in by_item.values()), Decimal(0)),
        total_value=sum((group.value for group in by_item.values()), Decimal(0)),
    )


class ValuationService:
    """Values a project's booked effort against its budget."""

    def __init__(
        self,
        entries: EntryRepository,
        pricing: PricingService,
        projects: MongoProjectRepository,
    ):
        """Initialize service with its repositories."""
        self.entries = entries
        self.pricing = pricing
        self.projects = projects

    async def _load(self, project_id: str):
        # Unknown projects value at the default price list with no budget
        project = await self.projects.get(project_id)
        customer_id = project.customer_id if project else None
        budget = project.total_budget if project else Decimal(0)

        table = await self.pricing.rate_table_for_customer(customer_id)
        entries = await self.entries.list_for_project(project_id)
        return entries, table, budget

    async def project_usage(
        self,
        project_id: str,
        task_id: Optional[str] = None,
    ) -> UsageResult:
        """
        Compute budget usage for a project.

        Args:
            project_id: Project ID
            task_id: Optional task filter

        Returns:
            Usage result
        """
        entries, table, budget = await self._load(project_id)
        if task_id:
            entries = [entry for entry in entries if entry.task_id == task_id]
        return compute_usage(entries, table, budget)

    async def project_hours(self, project_id: str) -> HoursBreakdown:
        """Hours breakdown for a project."""
        entries, table, _budget = await self._load(project_id)
        return hours_breakdown(entries, table)
