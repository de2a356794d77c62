import math
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Optional


def format_num(
    n: Optional[float],
    currency: bool = False,
    max_digits: int = 2,
    min_digits: Optional[int] = None
) -> str:
    """
    en-US number formatting: thousands separators, half-up rounding and
    trailing zeros trimmed down to `min_digits`.

    Args:
        n: Value to format; None or non-finite renders as '-'
        currency: Prefix '$' and keep at least 2 fraction digits
        max_digits: Maximum fraction digits
        min_digits: Minimum fraction digits (defaults to 2 for currency, 0 otherwise)
    """
    if n is None or not math.isfinite(n):
        return '-'

    if min_digits is None:
        min_digits = 2 if currency else 0
    min_digits = min(min_digits, max_digits)

    # repr() keeps the shortest decimal form, so 1.005 rounds like a human expects
    quantum = Decimal(1).scaleb(-max_digits)
    with localcontext() as ctx:
        ctx.prec = 80
        rounded = Decimal(repr(float(n))).quantize(quantum, rounding=ROUND_HALF_UP)
        sign = '-' if rounded < 0 else ''
        body = f"{abs(rounded):,.{max_digits}f}"

    # Trim optional trailing zeros
    if max_digits > min_digits:
        whole, _, frac = body.partition('.')
        frac = frac.rstrip('0')
        if len(frac) < min_digits:
            frac = frac.ljust(min_digits, '0')
        body = f"{whole}.{frac}" if frac else whole

    return f"{sign}${body}" if currency else f"{sign}{body}"


def format_usd(n: Optional[float], max_digits: int = 2) -> str:
    return format_num(n, currency=True, max_digits=max_digits)


def format_pct(n: Optional[float], digits: int = 1) -> str:
    return format_num(n, max_digits=digits)


def secs_to_hhmm(secs: Optional[float]) -> str:
    if secs is None or not math.isfinite(secs):
        return '-'
    secs = int(secs)
    return f"{secs // 3600}h {(secs % 3600) // 60}m"
