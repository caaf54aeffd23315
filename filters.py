"""
Filter engine for submission views.

Filters are conjunctive; an unset dimension matches everything. Month and
date range are mutually exclusive time modes: month wins when both are set,
and a range only applies once both ends are chosen. The end date is
inclusive through the end of that day.
"""

import logging
from datetime import date, datetime, time
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

import errors
from schemas import FilterConfig, SubmissionRecord, field_errors

logger = logging.getLogger(__name__)

RANGE_FIELDS = ("start_date", "end_date")
EQUALITY_FIELDS = ("status", "batch", "semester", "event_type")


def update_filter(config: FilterConfig, name: str, value: Any) -> FilterConfig:
    """Return a new configuration with one dimension changed.

    Choosing a month clears the date range; choosing either range end clears
    the month. Clearing a value leaves the other time mode alone.
    """
    if name not in FilterConfig.model_fields:
        raise errors.ValidationError(f"Unknown filter: {name}", fields={name: "unknown filter"})

    data = config.model_dump()
    data[name] = value
    if value not in (None, ""):
        if name == "month":
            data.update(start_date=None, end_date=None)
        elif name in RANGE_FIELDS:
            data["month"] = None

    try:
        return FilterConfig.model_validate(data)
    except PydanticValidationError as exc:
        raise errors.ValidationError("Invalid filter value", fields=field_errors(exc))


def parse_event_date(value: Any) -> Optional[datetime]:
    """Event date as a naive datetime, or None when missing or unparseable."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    try:
        return datetime.fromisoformat(str(value)).replace(tzinfo=None)
    except ValueError:
        return None


def _in_time_window(record: SubmissionRecord, config: FilterConfig) -> bool:
    if config.month is not None:
        when = parse_event_date(record.event_date)
        return when is not None and when.month == config.month

    if config.start_date and config.end_date:
        when = parse_event_date(record.event_date)
        if when is None:
            return False
        start = datetime.combine(config.start_date, time.min)
        end = datetime.combine(config.end_date, time.max)
        return start <= when <= end

    return True


def matches(record: SubmissionRecord, config: FilterConfig) -> bool:
    for name in EQUALITY_FIELDS:
        wanted = getattr(config, name)
        if wanted is not None and getattr(record, name) != wanted:
            return False
    return _in_time_window(record, config)


def apply_filters(records: Iterable[SubmissionRecord], config: FilterConfig) -> List[SubmissionRecord]:
    """Visible subset, in input order."""
    return [r for r in records if matches(r, config)]


class FilteredView:
    """A record set plus a filter configuration.

    Any change to either recomputes the visible subset over the whole set.
    """

    def __init__(self, records: Iterable[SubmissionRecord] = (), config: Optional[FilterConfig] = None):
        self._records = list(records)
        self.config = config or FilterConfig()
        self.visible: List[SubmissionRecord] = []
        self._recompute()

    @property
    def records(self) -> List[SubmissionRecord]:
        return list(self._records)

    def _recompute(self):
        self.visible = apply_filters(self._records, self.config)

    def set_records(self, records: Iterable[SubmissionRecord]):
        self._records = list(records)
        self._recompute()

    def set_filter(self, name: str, value: Any):
        self.config = update_filter(self.config, name, value)
        logger.debug(f"Filters now {self.config.active()}")
        self._recompute()

    def replace_filters(self, config: FilterConfig):
        self.config = config
        self._recompute()

    def reset(self):
        self.replace_filters(FilterConfig())
