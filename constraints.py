# Coupon definition checks shared by create and edit; first violation wins.
from datetime import date, datetime
from typing import Iterable, List, Optional, Union

from errors import CategoryConflict, ConstraintViolation, InvalidDateWindow, ProductConflict


def split_product_ids(value: Union[str, Iterable[str], None]) -> List[str]:
    """Turn a comma separated product-ID field into a clean list."""
    if not value:
        return []
    tokens = value.split(",") if isinstance(value, str) else value
    return [token.strip() for token in tokens if token and token.strip()]


def _as_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def _overlap(applicable: List[str], excluded: List[str]) -> List[str]:
    if not applicable or not excluded:
        return []
    excluded_set = set(excluded)
    seen = []
    for item in applicable:
        if item in excluded_set and item not in seen:
            seen.append(item)
    return seen


def check_date_window(start, end, today: Optional[date] = None) -> Optional[InvalidDateWindow]:
    start, end = _as_date(start), _as_date(end)
    if start is None or end is None:
        return None
    today = today or date.today()
    if start < today:
        return InvalidDateWindow("Start date must be today or a future date")
    if end < today:
        return InvalidDateWindow("End date must be today or a future date")
    if start >= end:
        return InvalidDateWindow("Start date must be before end date")
    return None


def check_coupon_definition(draft, today: Optional[date] = None) -> Optional[ConstraintViolation]:
    violation = check_date_window(draft.startDate, draft.endDate, today)
    if violation:
        return violation

    categories = _overlap(list(draft.applicableCategories or []), list(draft.excludedCategories or []))
    if categories:
        return CategoryConflict(categories)

    products = _overlap(split_product_ids(draft.applicableProducts), split_product_ids(draft.excludedProducts))
    if products:
        return ProductConflict(products)

    return None


def ensure_valid_definition(draft, today: Optional[date] = None) -> None:
    violation = check_coupon_definition(draft, today)
    if violation:
        raise violation
