# src/taskcal/workdays/workday_defaults.py

"""
Default work mode for days without an explicit workday row.

- Saturday, Sunday       -> OFF
- public holiday         -> OFF
- configured remote days -> REMOTE (Wednesday and Friday by default)
- any other weekday      -> ON_SITE

Public holidays come from a JSON endpoint whose keys are ISO dates
(e.g. {"2024-05-01": "1er mai", ...}), downloaded once per year.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from datetime import date

import httpx

from .workday_models import WorkMode

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_WEEKDAYS: tuple[int, ...] = (2, 4)


def default_work_mode(
    day: date,
    holidays: Collection[date] = (),
    remote_weekdays: Collection[int] = DEFAULT_REMOTE_WEEKDAYS,
) -> WorkMode:
    weekday = day.weekday()
    if weekday >= 5:
        return WorkMode.OFF
    if day in holidays:
        return WorkMode.OFF
    if weekday in remote_weekdays:
        return WorkMode.REMOTE
    return WorkMode.ON_SITE


def _parse_holiday_payload(payload: object) -> frozenset[date]:
    if not isinstance(payload, dict):
        return frozenset()
    out: set[date] = set()
    for key in payload:
        try:
            out.add(date.fromisoformat(str(key)))
        except ValueError:
            continue
    return frozenset(out)


class NoHolidays:
    """HolidaySource used when holiday download is disabled."""

    async def holidays_for_year(self, year: int) -> frozenset[date]:
        return frozenset()


class HolidayCalendar:
    """
    HolidaySource backed by an HTTP endpoint, cached per year.

    Best-effort: an HTTP or decoding failure is logged and the year is treated
    as having no holidays (and cached, so a broken endpoint is hit once).
    """

    def __init__(
        self,
        url_template: str,
        *,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url_template = url_template
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport
        self._cache: dict[int, frozenset[date]] = {}

    async def holidays_for_year(self, year: int) -> frozenset[date]:
        cached = self._cache.get(year)
        if cached is not None:
            return cached

        holidays = await self._fetch(year)
        self._cache[year] = holidays
        return holidays

    async def _fetch(self, year: int) -> frozenset[date]:
        url = self._url_template.format(year=year)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                payload = resp.json()
        except (httpx.HTTPError, ValueError):
            logger.warning("Failed to fetch public holidays year=%s url=%s", year, url, exc_info=True)
            return frozenset()

        holidays = _parse_holiday_payload(payload)
        logger.info("Loaded %d public holidays for %s", len(holidays), year)
        return holidays
