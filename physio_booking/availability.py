from __future__ import annotations
import logging
from datetime import datetime, timedelta
from .client import GoogleCalendarClient
from .errors import ValidationFailed
from .models import AvailabilityResult
from .rules import DEFAULT_RULES, BusinessRules, localize
from .slots import is_slot_busy

logger = logging.getLogger(__name__)


class AvailabilityChecker:
    """Free/busy lookups for a single candidate interval. Retries are the caller's business."""

    def __init__(self, client: GoogleCalendarClient, rules: BusinessRules = DEFAULT_RULES):
        self.client = client
        self.rules = rules

    async def check(self, start: datetime, end: datetime) -> AvailabilityResult:
        start, end = localize(start, self.rules), localize(end, self.rules)
        if start >= end:
            raise ValidationFailed("End time must be after start time")

        busy_times = await self.client.free_busy_query(start, end)
        available = not is_slot_busy(start, end - start, busy_times)
        logger.debug("Availability %s..%s: %s (%d busy)", start.isoformat(), end.isoformat(), available, len(busy_times))
        return AvailabilityResult(available=available, busy_times=busy_times)

    async def is_slot_available(self, start: datetime, duration: int) -> bool:
        start = localize(start, self.rules)
        result = await self.check(start, start + timedelta(minutes=duration))
        return result.available
