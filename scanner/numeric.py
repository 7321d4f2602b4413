from decimal import ROUND_HALF_UP, Decimal


def round_half_up(value: float, places: int = 0) -> float:
    """Round like a billing system does: halves go away from zero."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round_count(value: float) -> int:
    return int(round_half_up(value))


def safe_ratio(numerator: float, denominator: float) -> float:
    """Ratio against a zero (or negative) denominator is 0, not an error."""
    return numerator / denominator if denominator > 0 else 0.0


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))
