"""Amount formatting for provider minor-unit prices."""

from typing import Optional

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "CAD": "CA$",
    "AUD": "A$",
    "JPY": "¥",
    "CNY": "CN¥",
    "INR": "₹",
    "BRL": "R$",
    "MXN": "MX$",
    "KRW": "₩",
    "TRY": "₺",
}

# Currencies the provider reports without a minor unit
ZERO_DECIMAL_CURRENCIES = frozenset(
    {"BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA", "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF"}
)


def minor_to_major(amount: int, currency: str) -> float:
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return float(amount)
    return amount / 100


def format_amount(amount: Optional[int], currency: Optional[str]) -> Optional[str]:
    """Format a minor-unit amount for display.

    Args:
        amount: Amount in minor units (cents), or None
        currency: ISO 4217 code in any case; defaults to USD

    Returns:
        Display string such as "$18.00" or "9.99 CHF", or None if amount is None

    Examples:
        >>> format_amount(1800, "usd")
        '$18.00'
        >>> format_amount(1500, "jpy")
        '¥1,500'
        >>> format_amount(999, "chf")
        '9.99 CHF'
    """
    if amount is None:
        return None

    code = (currency or "usd").upper()
    major = minor_to_major(amount, code)
    digits = 0 if code in ZERO_DECIMAL_CURRENCIES else 2
    number = f"{major:,.{digits}f}"

    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol:
        return f"{symbol}{number}"
    return f"{number} {code}"
