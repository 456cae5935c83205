"""
Utility functions for the message box API.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional
from urllib.parse import urlencode
from zoneinfo import ZoneInfo

from fastapi import Request

from otayori.errors import ValidationError

logger = logging.getLogger(__name__)

# Largest value of a signed 64-bit INTEGER column
MAX_IDENTIFIER = 2**63 - 1


def utc_now_iso() -> str:
    """Server timestamp, ISO-8601 UTC with microseconds so it sorts by insertion."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def today_in(tz_name: str) -> date:
    """Current calendar date in the given IANA timezone."""
    return datetime.now(ZoneInfo(tz_name)).date()


def is_blank(value: Any) -> bool:
    """True for None and for strings that are empty after stripping."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def parse_identifier(value: Any, field: str = "id") -> int:
    """
    Parse a record identifier: a positive integer or a string of ASCII digits,
    no larger than a signed 64-bit INTEGER column can hold.

    Raises:
        ValidationError: if the value is not a well-formed identifier
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field}の形式が正しくありません")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        parsed = int(value.strip())
    else:
        raise ValidationError(f"{field}の形式が正しくありません")

    if parsed <= 0 or parsed > MAX_IDENTIFIER:
        raise ValidationError(f"{field}の形式が正しくありません")
    return parsed


def parse_date(value: Optional[str], field: str) -> Optional[date]:
    """
    Parse an optional YYYY-MM-DD date; blank means absent.

    Raises:
        ValidationError: if the value is not a valid calendar date
    """
    if is_blank(value):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(f"{field}の日付形式が正しくありません（YYYY-MM-DD）")


def format_school_class(school_year: Any, school_class: Any) -> Optional[str]:
    """Display string "{year}年{class}組", or None unless both parts are given."""
    if is_blank(school_year) or is_blank(school_class):
        return None
    return f"{str(school_year).strip()}年{str(school_class).strip()}組"


def get_client_ip(request: Request) -> Optional[str]:
    """
    Best-effort client address.

    Uses the first entry of X-Forwarded-For when present, otherwise the
    address of the connecting peer.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return None


def build_staff_url(base_url: str, staff_path: str, token: str) -> str:
    """Staff page URL with the access token as ``?token=``."""
    return f"{base_url.rstrip('/')}/{staff_path.lstrip('/')}?{urlencode({'token': token})}"
