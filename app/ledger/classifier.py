from enum import Enum

from app.models.schemas import FinancialRecord, RecordKind

DEBT_KEYWORDS = (
    "信用卡",
    "卡債",
    "貸款",
    "贷款",
    "學貸",
    "房貸",
    "車貸",
    "欠款",
    "負債",
    "應付",
    "credit card",
    "loan",
    "debt",
    "owed",
    "mortgage",
)


class ClassificationContext(str, Enum):
    """Which kind of conversation produced the record."""

    EXPENSE = "expense"
    ASSET = "asset"


def is_debt_label(category: str) -> bool:
    label = category.casefold()
    return any(keyword in label for keyword in DEBT_KEYWORDS)


def classify(category: str, context: ClassificationContext) -> RecordKind:
    if context is ClassificationContext.ASSET:
        return RecordKind.DEBT if is_debt_label(category) else RecordKind.ASSET
    # Income is decided by the command that produced the record, never by text
    return RecordKind.EXPENSE


def classify_record(
    record: FinancialRecord, context: ClassificationContext
) -> tuple[FinancialRecord, RecordKind]:
    return record, classify(record.category, context)
