"""
NAP report monthly figures.

A report carries up to twelve months keyed by three-letter codes, each with
``cc`` (case count), ``sale`` and ``lapsed``.  A month counts as active when
it has cases or lapses; totals only sum active months.
"""

from dataclasses import dataclass, field

MONTH_CODES: tuple[str, ...] = (
    "JAN", "FEB", "MAR", "APR", "MAY", "JUN",
    "JUL", "AUG", "SEP", "OCT", "NOV", "DEC",
)

INVALID_MONTH_MESSAGE = "Invalid month code. Use 3-letter format: JAN, FEB, etc."


@dataclass
class NapTotals:
    total_cc: int = 0
    total_sale: float = 0.0
    total_lapsed: float = 0.0
    active_months: list[str] = field(default_factory=list)


def normalize_month(code: str) -> str:
    month = code.strip().upper()
    if month not in MONTH_CODES:
        raise ValueError(INVALID_MONTH_MESSAGE)
    return month


def month_values(data: dict) -> dict:
    return {
        "cc": data.get("cc") or 0,
        "sale": round(data.get("sale") or 0, 2),
        "lapsed": round(data.get("lapsed") or 0, 2),
    }


def is_active_month(data: dict | None) -> bool:
    return bool(data) and ((data.get("cc") or 0) > 0 or (data.get("lapsed") or 0) > 0)


def calculate_totals(monthly: dict[str, dict | None]) -> NapTotals:
    total_cc = 0.0
    total_sale = 0.0
    total_lapsed = 0.0
    active: list[str] = []

    for month in MONTH_CODES:
        data = monthly.get(month)
        if not is_active_month(data):
            continue
        total_cc += data.get("cc") or 0
        total_sale += data.get("sale") or 0
        total_lapsed += data.get("lapsed") or 0
        active.append(month)

    return NapTotals(
        total_cc=round(total_cc),
        total_sale=round(total_sale, 2),
        total_lapsed=round(total_lapsed, 2),
        active_months=active,
    )


def has_activity(monthly: dict[str, dict | None]) -> bool:
    return any(is_active_month(data) for data in monthly.values())
