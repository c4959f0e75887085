"""Summary statistics over a user's ledger records.

Everything here is a pure reduction: the same records always give the same
Summary, so reports are recomputed from scratch on every request.

Unknown expense is the part of income not explained by logged spending:
``max(0, total_income - total_expense - baseline)``. The baseline is a single
deployment-wide value (``UNKNOWN_EXPENSE_BASELINE``, default 0) and asset
balances never enter the formula.
"""

from collections.abc import Iterable
from datetime import date

from app.models.schemas import Record, RecordKind, Report, ReportPeriod, Summary


def summarize(records: Iterable[Record], baseline: int = 0) -> Summary:
    totals = {kind: 0 for kind in RecordKind}
    expense_by_category: dict[str, int] = {}
    subcategory_totals: dict[str, int] = {}

    for record in records:
        totals[record.kind] += record.amount
        if record.subcategory:
            subcategory_totals[record.subcategory] = (
                subcategory_totals.get(record.subcategory, 0) + record.amount
            )
        if record.kind is RecordKind.EXPENSE:
            expense_by_category[record.category] = (
                expense_by_category.get(record.category, 0) + record.amount
            )

    total_income = totals[RecordKind.INCOME]
    total_expense = totals[RecordKind.EXPENSE]
    total_assets = totals[RecordKind.ASSET]
    total_debts = totals[RecordKind.DEBT]

    return Summary(
        total_income=total_income,
        total_expense=total_expense,
        unknown_expense=max(0, total_income - total_expense - baseline),
        total_assets=total_assets,
        total_debts=total_debts,
        net_asset=total_assets - total_debts,
        expense_by_category=expense_by_category,
        subcategory_totals=subcategory_totals,
    )


def summarize_streams(
    incomes: Iterable[Record],
    expenses: Iterable[Record],
    balances: Iterable[Record],
    baseline: int = 0,
) -> Summary:
    """Summarize records kept as three separate streams.

    ``balances`` holds both asset and debt records; the kind on each record
    decides which side of net worth it lands on.
    """
    income_list = [r for r in incomes if r.kind is RecordKind.INCOME]
    expense_list = [r for r in expenses if r.kind is RecordKind.EXPENSE]
    balance_list = [
        r for r in balances if r.kind in (RecordKind.ASSET, RecordKind.DEBT)
    ]
    return summarize([*income_list, *expense_list, *balance_list], baseline)


def period_start(period: ReportPeriod, today: date) -> date | None:
    """First day included in a reporting period ending today."""
    if period == "monthly":
        return today.replace(day=1)
    if period == "quarterly":
        return date(today.year, 3 * ((today.month - 1) // 3) + 1, 1)
    if period == "halfyearly":
        return date(today.year, 1 if today.month <= 6 else 7, 1)
    if period == "yearly":
        return date(today.year, 1, 1)
    if period == "all":
        return None
    raise ValueError(f"Unknown report period: {period}")


def build_report(
    records: Iterable[Record],
    period: ReportPeriod = "monthly",
    today: date | None = None,
    baseline: int = 0,
) -> Report:
    """Build the dashboard read model for one reporting period.

    Income and expense records are limited to the period; asset and debt
    records are balances, not flows, so they are always included.
    """
    since = period_start(period, today or date.today())

    def in_period(record: Record) -> bool:
        return since is None or record.recorded_at >= since

    grouped: dict[RecordKind, list[Record]] = {kind: [] for kind in RecordKind}
    for record in records:
        if record.kind in (RecordKind.INCOME, RecordKind.EXPENSE) and not in_period(record):
            continue
        grouped[record.kind].append(record)

    return Report(
        period=period,
        since=since,
        summary=summarize(
            [record for kind_records in grouped.values() for record in kind_records],
            baseline,
        ),
        incomes=grouped[RecordKind.INCOME],
        expenses=grouped[RecordKind.EXPENSE],
        assets=grouped[RecordKind.ASSET],
        debts=grouped[RecordKind.DEBT],
    )
