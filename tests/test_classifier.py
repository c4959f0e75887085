import pytest

from app.ledger.classifier import ClassificationContext, classify, classify_record
from app.ledger.parser import parse_record
from app.models.schemas import RecordKind


@pytest.mark.parametrize(
    "category",
    ["信用卡", "國泰信用卡", "學貸", "房貸餘額", "Credit Card", "car LOAN", "owed to mom", "DEBT"],
)
def test_debt_keywords_in_asset_context(category):
    assert classify(category, ClassificationContext.ASSET) is RecordKind.DEBT


@pytest.mark.parametrize("category", ["台新", "現金", "股票現值", "savings"])
def test_other_labels_in_asset_context_are_assets(category):
    assert classify(category, ClassificationContext.ASSET) is RecordKind.ASSET


@pytest.mark.parametrize("category", ["午餐", "信用卡", "salary"])
def test_expense_context_is_always_expense(category):
    assert classify(category, ClassificationContext.EXPENSE) is RecordKind.EXPENSE


def test_classification_is_idempotent():
    kinds = [classify("信用卡債", ClassificationContext.ASSET) for _ in range(3)]

    assert kinds == [RecordKind.DEBT] * 3


def test_classify_record_keeps_record():
    record = parse_record("信用卡 15000")

    classified, kind = classify_record(record, ClassificationContext.ASSET)

    assert classified == record
    assert kind is RecordKind.DEBT
