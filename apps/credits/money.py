"""
Money Utilities
===============

All amounts in the system are integer cents (paise). Decimal is used only at
the presentation boundary and for percentage arithmetic; floats never touch
money.

Percentages and fractions always round toward negative infinity so that a
derived amount (a cap, a cashback figure) can never exceed what the exact
arithmetic would allow.

Example::

    from apps.credits.money import format_cents, floor_percent

    format_cents(1250)               # '₹12.50'
    format_compact(1200)             # '₹12'
    floor_percent(1104, Decimal(5))  # 55
"""

from decimal import Decimal, InvalidOperation, ROUND_FLOOR

from django.conf import settings


CENTS_PER_UNIT = 100


def _symbol(symbol):
    return settings.CURRENCY_SYMBOL if symbol is None else symbol


def format_cents(cents, symbol=None):
    """
    Format integer cents as a currency string with two decimals.

    Args:
        cents (int): Amount in cents. May be negative.
        symbol (str, optional): Currency symbol. Defaults to CURRENCY_SYMBOL.

    Returns:
        str: e.g. '₹12.50', '-₹1.00'
    """
    cents = int(cents)
    sign = '-' if cents < 0 else ''
    units, rest = divmod(abs(cents), CENTS_PER_UNIT)
    return f"{sign}{_symbol(symbol)}{units:,}.{rest:02d}"


def format_compact(cents, symbol=None):
    """Like format_cents() but drops a '.00' fraction: '₹12', '₹12.50'."""
    cents = int(cents)
    if cents % CENTS_PER_UNIT:
        return format_cents(cents, symbol)
    sign = '-' if cents < 0 else ''
    return f"{sign}{_symbol(symbol)}{abs(cents) // CENTS_PER_UNIT:,}"


def parse_amount(value):
    """
    Convert a decimal amount ('12.50', Decimal('12.5'), 12) to integer cents.

    Raises:
        ValueError: For floats, unparseable strings, or more than two
            decimal places.
    """
    if isinstance(value, float):
        raise ValueError("Amounts must be given as strings or Decimal, not float")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")

    cents = amount * CENTS_PER_UNIT
    if cents != cents.to_integral_value():
        raise ValueError(f"Amount {value!r} has more than two decimal places")
    return int(cents)


def floor_fraction(cents, fraction):
    """floor(cents * fraction), fraction given as Decimal or decimal string."""
    product = Decimal(int(cents)) * Decimal(str(fraction))
    return int(product.to_integral_value(rounding=ROUND_FLOOR))


def floor_percent(cents, pct):
    """floor(cents * pct / 100)."""
    product = Decimal(int(cents)) * Decimal(str(pct)) / CENTS_PER_UNIT
    return int(product.to_integral_value(rounding=ROUND_FLOOR))
