from decimal import Decimal, ROUND_HALF_UP

Money = Decimal

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def D(x) -> Money:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))


def round_money(x) -> Money:
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)


def to_float(x) -> float:
    """JSON columns and API payloads carry money as floats with two decimals"""
    return float(round_money(x))


def to_minor_units(x) -> int:
    """Amount in cents, as Stripe expects"""
    return int((round_money(x) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def format_amount(x) -> str:
    """Provider string amounts such as ``"72.00"``"""
    return f"{round_money(x):.2f}"
