from datetime import date, datetime, timezone
from typing import List, NamedTuple, Optional, Union

MONTH_ABBR = ['Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun', 'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec']


class MonthHeader(NamedTuple):
    key: str
    month: str
    year: int


def parse_accurate_date(value: Optional[str]) -> Optional[date]:
    """Parse Accurate's DD/MM/YYYY (falls back to ISO YYYY-MM-DD)"""
    if not value:
        return None
    parts = value.strip().split('/')
    try:
        if len(parts) == 3:
            return date(int(parts[2]), int(parts[1]), int(parts[0]))
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def format_accurate_date(value: date) -> str:
    """Format a date the way Accurate filters expect it (DD/MM/YYYY)"""
    return value.strftime('%d/%m/%Y')


def month_key(value: date) -> str:
    return f"{MONTH_ABBR[value.month - 1]}|{value.year}"


def month_headers(start: date, end: date) -> List[MonthHeader]:
    """One header per calendar month from start's month through end's month"""
    headers = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        abbr = MONTH_ABBR[month - 1]
        headers.append(MonthHeader(key=f"{abbr}|{year}", month=abbr, year=year))
        month += 1
        if month > 12:
            month = 1
            year += 1
    return headers


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])
