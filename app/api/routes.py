from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from loguru import logger

from app.config import Settings
from app.db.repository import LedgerRepository
from app.deps import get_app_settings, get_repo
from app.errors import PersistenceFailure
from app.ledger.aggregator import build_report
from app.models.schemas import (
    CreateRecordRequest,
    Record,
    RecordKind,
    Report,
    ReportPeriod,
    UpdateRecordRequest,
    UserState,
)

router = APIRouter(prefix="/api")


def _require_user(repo: LedgerRepository, user_id: int) -> UserState:
    user = repo.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/health")
def health(settings: Settings = Depends(get_app_settings)):
    return {
        "status": "ok",
        "timestamp": datetime.now().isoformat(),
        "environment": {
            "database": bool(settings.db_path),
            "line_bot": bool(settings.line_channel_secret),
            "telegram": bool(settings.telegram_bot_token),
        },
        "configured": not settings.missing_line_config(),
    }


@router.get("/users", response_model=list[UserState])
def list_users(repo: LedgerRepository = Depends(get_repo)):
    return repo.list_users()


@router.get("/users/{user_id}", response_model=UserState)
def get_user(user_id: int, repo: LedgerRepository = Depends(get_repo)):
    return _require_user(repo, user_id)


@router.get("/users/{user_id}/records", response_model=list[Record])
def list_records(
    user_id: int,
    kind: RecordKind | None = None,
    repo: LedgerRepository = Depends(get_repo),
):
    _require_user(repo, user_id)
    return repo.list_records(user_id, kind=kind)


@router.post("/users/{user_id}/records", response_model=Record, status_code=201)
def create_record(
    user_id: int,
    request: CreateRecordRequest,
    repo: LedgerRepository = Depends(get_repo),
):
    _require_user(repo, user_id)
    record = repo.insert_record(
        user_id,
        request.category.strip(),
        request.amount,
        request.kind,
        recorded_at=request.recorded_at,
        description=request.description,
        subcategory=request.subcategory,
    )
    logger.info("Created {} record #{} for user #{}", record.kind.value, record.id, user_id)
    return record


@router.get("/users/{user_id}/report", response_model=Report)
def get_report(
    user_id: int,
    period: ReportPeriod = "monthly",
    repo: LedgerRepository = Depends(get_repo),
    settings: Settings = Depends(get_app_settings),
):
    _require_user(repo, user_id)
    records = repo.list_records(user_id)
    return build_report(records, period, baseline=settings.unknown_expense_baseline)


@router.get("/records/{record_id}", response_model=Record)
def get_record(record_id: int, repo: LedgerRepository = Depends(get_repo)):
    record = repo.get_record(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return record


@router.patch("/records/{record_id}", response_model=Record)
def update_record(
    record_id: int,
    request: UpdateRecordRequest,
    repo: LedgerRepository = Depends(get_repo),
):
    updated = repo.update_record(record_id, **request.model_dump(exclude_none=True))
    if updated is None:
        raise HTTPException(status_code=404, detail="Record not found")
    logger.info("Updated record #{}", record_id)
    return updated


@router.delete("/records/{record_id}")
def delete_record(record_id: int, repo: LedgerRepository = Depends(get_repo)):
    if not repo.delete_record(record_id):
        raise HTTPException(status_code=404, detail="Record not found")
    logger.info("Deleted record #{}", record_id)
    return {"detail": "Record deleted"}


def persistence_failure_handler(request: Request, exc: PersistenceFailure):
    logger.error("{} {} failed: {}", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503, content={"detail": "Ledger store unavailable, try again"}
    )
