"""Query-string parsing shared by the list endpoints.

Bad values are reported as 400 ``{"detail": "INVALID_QUERY", "error": ...}``
through DRF's exception handler instead of surfacing as server errors.
"""

from typing import Optional

from django.core.paginator import Paginator
from rest_framework import status
from rest_framework.exceptions import APIException


class InvalidQuery(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "invalid_query"

    def __init__(self, message: str):
        super().__init__(detail={"detail": "INVALID_QUERY", "error": message})


def int_param(request, name: str, default: int, lo: int = 1, hi: Optional[int] = None) -> int:
    """Read an integer query parameter clamped to ``[lo, hi]``.

    Raises:
        InvalidQuery: When the value is not an integer.
    """
    raw = request.GET.get(name)
    if raw is None or raw == "":
        value = default
    else:
        try:
            value = int(raw)
        except ValueError:
            raise InvalidQuery(f"{name} must be an integer")
    value = max(lo, value)
    if hi is not None:
        value = min(hi, value)
    return value


def paginate(request, qs, default_size: int = 20, max_size: int = 100):
    """Return ``(paginator, page, page_size)`` for ``?page=&page_size=``."""
    page_size = int_param(request, "page_size", default_size, lo=1, hi=max_size)
    paginator = Paginator(qs, page_size)
    return paginator, paginator.get_page(request.GET.get("page", 1)), page_size
