from datetime import date

import pytest
from pydantic import ValidationError

from app.errors import PersistenceFailure
from app.models.schemas import ConversationState, RecordKind


def test_get_or_create_user_is_idempotent(repo):
    first = repo.get_or_create_user("U123", "小明")
    second = repo.get_or_create_user("U123")

    assert first.id == second.id
    assert second.display_name == "小明"
    assert second.state is ConversationState.NEW
    assert len(repo.list_users()) == 1


def test_get_or_create_user_refreshes_display_name(repo):
    repo.get_or_create_user("U123", "小明")

    user = repo.get_or_create_user("U123", "小華")

    assert user.display_name == "小華"


def test_update_user(repo):
    user = repo.get_or_create_user("U123")

    updated = repo.update_user(
        user.id, state=ConversationState.ACTIVE, setup_completed=True
    )

    assert updated.state is ConversationState.ACTIVE
    assert updated.setup_completed is True
    assert updated.disclaimer_accepted is False
    assert repo.update_user(999, setup_completed=True) is None


def test_insert_and_list_records_by_kind(repo):
    user = repo.get_or_create_user("U123")
    repo.insert_record(user.id, "午餐", 120, RecordKind.EXPENSE)
    repo.insert_record(user.id, "薪資", 45000, RecordKind.INCOME, recorded_at=date(2024, 1, 5))
    other = repo.get_or_create_user("U999")
    repo.insert_record(other.id, "晚餐", 300, RecordKind.EXPENSE)

    records = repo.list_records(user.id)
    incomes = repo.list_records(user.id, kind=RecordKind.INCOME)

    assert len(records) == 2
    assert [r.category for r in incomes] == ["薪資"]
    assert incomes[0].recorded_at == date(2024, 1, 5)
    assert incomes[0].kind is RecordKind.INCOME


def test_update_record_only_touches_provided_fields(repo):
    user = repo.get_or_create_user("U123")
    record = repo.insert_record(user.id, "午餐", 120, RecordKind.EXPENSE)

    updated = repo.update_record(record.id, amount=150, category=None)

    assert updated.amount == 150
    assert updated.category == "午餐"
    assert repo.update_record(999, amount=1) is None


def test_delete_record(repo):
    user = repo.get_or_create_user("U123")
    record = repo.insert_record(user.id, "午餐", 120, RecordKind.EXPENSE)

    assert repo.delete_record(record.id) is True
    assert repo.get_record(record.id) is None
    assert repo.delete_record(record.id) is False


def test_storage_errors_become_persistence_failures(repo, monkeypatch):
    user = repo.get_or_create_user("U123")

    def broken_insert(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(repo.records, "insert", broken_insert)

    with pytest.raises(PersistenceFailure):
        repo.insert_record(user.id, "午餐", 120, RecordKind.EXPENSE)
    assert repo.list_records(user.id) == []


def test_invalid_fields_are_validation_errors(repo):
    user = repo.get_or_create_user("U123")
    record = repo.insert_record(user.id, "午餐", 120, RecordKind.EXPENSE)

    with pytest.raises(ValidationError):
        repo.update_user(user.id, state="bogus")
    with pytest.raises(ValidationError):
        repo.update_record(record.id, amount=-5)

    assert repo.get_user(user.id).state is ConversationState.NEW
    assert repo.get_record(record.id).amount == 120
