from typing import Optional, Tuple

from assets_tracker.schemas.transactions import PriceAnomaly

# Exchanges quoting in minor units: pence, cents, agorot.
SUB_UNIT_CURRENCIES = {
    "GBX": "GBP",
    "GBp": "GBP",
    "ZAC": "ZAR",
    "ILA": "ILS",
}
SUB_UNIT_DIVISOR = 100.0

SPLIT_CANDIDATES = [
    (0.08, 0.12, "10:1", 0.1),
    (0.18, 0.22, "5:1", 0.2),
    (0.23, 0.27, "4:1", 0.25),
    (0.45, 0.55, "2:1", 0.5),
]


def _in_range(value: float, low: float, high: float) -> bool:
    return low <= value <= high


def is_sub_unit(currency: Optional[str]) -> bool:
    return currency in SUB_UNIT_CURRENCIES


def resolve_currency(currency: str) -> Tuple[str, float]:
    """
    Maps a quote currency to its major unit and the divisor between them,
    e.g. "GBp" -> ("GBP", 100.0), "USD" -> ("USD", 1.0).
    """
    if currency in SUB_UNIT_CURRENCIES:
        return SUB_UNIT_CURRENCIES[currency], SUB_UNIT_DIVISOR
    return currency.upper(), 1.0


def apply_multiplier(price: float, multiplier: float) -> float:
    """15000 x 0.01 -> 150.0, rounded to 8 decimals."""
    return round(price * multiplier, 8)


def detect_price_multiplier(
        user_price: float,
        quote_price: float,
        quote_currency: Optional[str] = None,
) -> PriceAnomaly:
    """
    Compares a hand-entered price with the live quote and suggests a multiplier.

    The ratio quote/user decides the outcome:
      ~100   -> user typed major units, exchange quotes minor ones (x100)
      ~0.01  -> user typed minor units, exchange quotes major ones (x0.01)
      ~1/N   -> possible N:1 stock split (warning only)
      <0.5 or >2 -> unexplained mismatch (warning only)
    """
    no_anomaly = PriceAnomaly(
        detected=False, suggested_multiplier=1.0, label="", severity="auto", ratio=0.0
    )

    if not user_price or not quote_price or user_price <= 0 or quote_price <= 0:
        return no_anomaly

    ratio = quote_price / user_price

    if _in_range(ratio, 85, 115):
        label = (
            f"Converted to {quote_currency} (x100)"
            if is_sub_unit(quote_currency)
            else "Price ~100x lower, likely needs conversion to pence/cents"
        )
        return PriceAnomaly(
            detected=True, suggested_multiplier=100.0, label=label, severity="auto", ratio=ratio
        )

    if _in_range(ratio, 0.008, 0.012):
        return PriceAnomaly(
            detected=True,
            suggested_multiplier=0.01,
            label="Price ~100x higher, likely needs conversion to major currency",
            severity="auto",
            ratio=ratio,
        )

    for low, high, split_label, multiplier in SPLIT_CANDIDATES:
        if _in_range(ratio, low, high):
            return PriceAnomaly(
                detected=True,
                suggested_multiplier=multiplier,
                label=f"Price mismatch (~{split_label} ratio), possible stock split?",
                severity="warning",
                ratio=ratio,
            )

    if ratio < 0.5 or ratio > 2.0:
        return PriceAnomaly(
            detected=True,
            suggested_multiplier=1.0,
            label=f"Significant price mismatch (ratio: {ratio:.2f}x)",
            severity="warning",
            ratio=ratio,
        )

    return no_anomaly
