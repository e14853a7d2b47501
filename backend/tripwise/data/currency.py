"""Currency utilities — static USD-pivot rates with per-trip FX overrides."""

# Static exchange rates to USD (can be updated periodically)
EXCHANGE_RATES_TO_USD: dict[str, float] = {
    "USD": 1.0,
    "CAD": 0.74,
    "GBP": 1.27,
    "EUR": 1.08,
    "JPY": 0.0067,
    "AUD": 0.65,
    "SGD": 0.75,
    "HKD": 0.13,
    "INR": 0.012,
    "AED": 0.27,
    "QAR": 0.27,
    "THB": 0.028,
    "TRY": 0.031,
    "KRW": 0.00074,
    "TWD": 0.031,
}

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "CAD": "C$",
    "GBP": "£",
    "EUR": "€",
    "JPY": "¥",
    "AUD": "A$",
    "SGD": "S$",
    "HKD": "HK$",
    "INR": "₹",
    "AED": "AED ",
    "THB": "฿",
}


def convert_to_usd(amount: float, from_currency: str) -> float:
    rate = EXCHANGE_RATES_TO_USD.get(from_currency, 1.0)
    return amount * rate


def convert_from_usd(amount: float, to_currency: str) -> float:
    rate = EXCHANGE_RATES_TO_USD.get(to_currency, 1.0)
    if rate == 0:
        return amount
    return amount / rate


def convert(
    amount: float,
    from_currency: str,
    to_currency: str,
    overrides: dict[str, float] | None = None,
) -> float:
    """Convert an amount into ``to_currency``.

    ``overrides`` maps a currency code to the number of ``to_currency`` units
    one unit of it is worth (as recorded by fx_change events) and wins over
    the static table.
    """
    if from_currency == to_currency:
        return amount
    if overrides and from_currency in overrides:
        return amount * overrides[from_currency]
    return convert_from_usd(convert_to_usd(amount, from_currency), to_currency)


def format_price(amount: float, currency: str = "INR") -> str:
    symbol = CURRENCY_SYMBOLS.get(currency, currency + " ")
    return f"{symbol}{round(amount):,}"
