"""
Retention date arithmetic.

Pure functions only: the same (archive_date, policy) always yields the same
retention_until.
"""

import calendar
from datetime import date
from typing import Optional

from clinidoc.models import RetentionPolicy

# Applied when no enabled policy matches the document type (5 years)
DEFAULT_RETENTION_MONTHS = 60


def add_months(start: date, months: int) -> date:
    """
    Add calendar months, clamping to the last day of the target month.

    2024-01-31 + 1 month -> 2024-02-29, 2026-01-15 + 12 months -> 2027-01-15.
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def compute_retention_until(
    archive_date: date,
    policy: Optional[RetentionPolicy],
    default_months: int = DEFAULT_RETENTION_MONTHS,
) -> date:
    """
    Compute the retention expiry for an archive made on archive_date.

    Only an enabled policy counts; a disabled or missing one falls back
    to default_months.
    """
    if policy is not None and policy.is_enabled:
        return add_months(archive_date, policy.duration_months)
    return add_months(archive_date, default_months)


def format_duration(months: int) -> str:
    """Human-readable duration, e.g. "5 Years", "1 Year", "18 Months"."""
    if months % 12 == 0:
        years = months // 12
        return f"{years} Year{'s' if years > 1 else ''}"
    return f"{months} Month{'s' if months > 1 else ''}"
