import threading
from contextlib import contextmanager
from datetime import date

from loguru import logger
from pydantic import ValidationError
from tinydb import Query, TinyDB

from app.errors import PersistenceFailure
from app.models.schemas import Record, RecordKind, UserState


class LedgerRepository:
    def __init__(self, db_path: str = "ledger.json"):
        self.db = TinyDB(db_path, encoding="utf-8", ensure_ascii=False)
        self.users = self.db.table("users")
        self.records = self.db.table("records")
        self._lock = threading.RLock()

    @contextmanager
    def _guard(self, operation: str):
        # TinyDB keeps one file handle; serialise access and surface IO errors
        with self._lock:
            try:
                yield
            except ValidationError:
                # invalid field values reach the caller unchanged
                raise
            except (OSError, ValueError) as e:
                logger.error("Ledger store {} failed: {}", operation, e)
                raise PersistenceFailure(f"{operation} failed") from e

    def close(self) -> None:
        self.db.close()

    # Users

    def get_or_create_user(
        self,
        external_id: str,
        display_name: str | None = None,
        channel: str = "line",
    ) -> UserState:
        with self._guard("get_or_create_user"):
            existing = self.get_user_by_external_id(external_id)
            if existing is not None:
                if display_name and existing.display_name != display_name:
                    return self.update_user(existing.id, display_name=display_name)
                return existing

            user = UserState(
                external_id=external_id, display_name=display_name, channel=channel
            )
            data = user.model_dump(mode="json")
            data.pop("id", None)
            user.id = self.users.insert(data)
            logger.info("Created user #{} ({})", user.id, external_id)
            return user

    def get_user(self, id: int) -> UserState | None:
        with self._guard("get_user"):
            doc = self.users.get(doc_id=id)
        if doc is None:
            return None
        return UserState(id=doc.doc_id, **doc)

    def get_user_by_external_id(self, external_id: str) -> UserState | None:
        User = Query()
        with self._guard("get_user_by_external_id"):
            docs = self.users.search(User.external_id == external_id)
        if not docs:
            return None
        return UserState(id=docs[0].doc_id, **docs[0])

    def list_users(self) -> list[UserState]:
        with self._guard("list_users"):
            docs = self.users.all()
        return [UserState(id=doc.doc_id, **doc) for doc in docs]

    def update_user(self, id: int, **fields) -> UserState | None:
        with self._guard("update_user"):
            if self.users.get(doc_id=id) is None:
                return None
            updates = UserState.model_validate(
                {"external_id": "", **fields}
            ).model_dump(mode="json", include=set(fields))
            if updates:
                self.users.update(updates, doc_ids=[id])
            return self.get_user(id)

    # Records

    def insert_record(
        self,
        user_id: int,
        category: str,
        amount: int,
        kind: RecordKind,
        recorded_at: date | None = None,
        description: str | None = None,
        subcategory: str | None = None,
    ) -> Record:
        record = Record(
            user_id=user_id,
            category=category,
            amount=amount,
            kind=kind,
            subcategory=subcategory,
            recorded_at=recorded_at or date.today(),
            description=description,
        )
        data = record.model_dump(mode="json")
        data.pop("id", None)
        with self._guard("insert_record"):
            record.id = self.records.insert(data)
        logger.info(
            "Recorded {} #{} for user #{}: {} {}",
            kind.value, record.id, user_id, category, amount,
        )
        return record

    def get_record(self, id: int) -> Record | None:
        with self._guard("get_record"):
            doc = self.records.get(doc_id=id)
        if doc is None:
            return None
        return Record(id=doc.doc_id, **doc)

    def list_records(self, user_id: int, kind: RecordKind | None = None) -> list[Record]:
        Rec = Query()
        condition = Rec.user_id == user_id
        if kind is not None:
            condition &= Rec.kind == kind.value
        with self._guard("list_records"):
            docs = self.records.search(condition)
        return [Record(id=doc.doc_id, **doc) for doc in docs]

    def update_record(self, id: int, **fields) -> Record | None:
        with self._guard("update_record"):
            doc = self.records.get(doc_id=id)
            if doc is None:
                return None
            # Filter out None values so we only update provided fields
            provided = {k: v for k, v in fields.items() if v is not None}
            if provided:
                merged = Record(id=doc.doc_id, **{**doc, **provided})
                updates = merged.model_dump(mode="json", include=set(provided))
                self.records.update(updates, doc_ids=[id])
            return self.get_record(id)

    def delete_record(self, id: int) -> bool:
        with self._guard("delete_record"):
            if self.records.get(doc_id=id) is None:
                return False
            self.records.remove(doc_ids=[id])
        return True
