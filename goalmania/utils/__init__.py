"""Utilities package"""

from .helpers import utcnow, as_utc, invoice_number
from .money import D, round_money
from .pagination import paginate

__all__ = [
    "utcnow",
    "as_utc",
    "invoice_number",
    "D",
    "round_money",
    "paginate",
]
