import re

from app.models.schemas import FinancialRecord

# Tried in order; the first match wins.
RECORD_PATTERNS = [
    re.compile(r"^(.+?)\s+([0-9]+)$"),  # "午餐 120"
    re.compile(r"^(.+?)\+([0-9]+)$"),  # "午餐+120"
    re.compile(r"^(.+?)：([0-9]+)$"),  # "午餐：120"
    re.compile(r"^(.+?)\$([0-9]+)$"),  # "午餐$120"
]


def parse_record(text: str) -> FinancialRecord | None:
    """Extract a (category, amount) pair from a chat line.

    Returns None when nothing matches; decimals and negative amounts are
    not recognised and simply miss.
    """
    if not isinstance(text, str):
        return None

    text = text.strip()
    for pattern in RECORD_PATTERNS:
        match = pattern.match(text)
        if match is None:
            continue
        category = match.group(1).strip()
        if not category:
            continue
        return FinancialRecord(category=category, amount=int(match.group(2), 10))
    return None
