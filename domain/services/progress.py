"""Client-side progress estimate for a scaffold that is still generating.

The bar slows down past 90% and never shows more than 95% until the
server reports READY.
"""

DECELERATE_ABOVE = 90.0
PROGRESS_CAP = 95.0


def progress_percent(elapsed_minutes: float, remaining_minutes: float) -> float:
    elapsed = max(0.0, float(elapsed_minutes))
    remaining = max(0.0, float(remaining_minutes))
    total = elapsed + remaining
    if total <= 0:
        return 0.0
    raw = 100.0 * elapsed / total
    if raw > DECELERATE_ABOVE:
        raw = DECELERATE_ABOVE + (raw - DECELERATE_ABOVE) / 2
    return round(min(raw, PROGRESS_CAP), 1)
