from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..dependencies import get_store
from ..models import ExpenseEntity
from ..repositories import EntityStore
from ..schemas import ExpenseCreate, ExpenseOut, ExpenseSummary, ExpenseUpdate, parse_datetime

router = APIRouter(
    prefix="/api/expenses",
    tags=["expenses"],
)

_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)
_LATEST = datetime.max.replace(tzinfo=timezone.utc)


def _is_date_only(value: str) -> bool:
    try:
        date.fromisoformat(value.strip())
    except ValueError:
        return False
    return True


def _parse_bound(value: str, name: str, end_of_day: bool) -> datetime:
    try:
        parsed = parse_datetime(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"{name} must be an ISO8601 date or datetime: {e}") from e
    assert parsed is not None
    if end_of_day and _is_date_only(value):
        # A bare end date covers the whole day
        parsed = datetime.combine(parsed.date(), time.max, tzinfo=timezone.utc)
    return parsed


def _parse_range(start: Optional[str], end: Optional[str]) -> Optional[Tuple[datetime, datetime]]:
    if start is None and end is None:
        return None
    lo = _parse_bound(start, "start", end_of_day=False) if start else _EARLIEST
    hi = _parse_bound(end, "end", end_of_day=True) if end else _LATEST
    if lo > hi:
        raise HTTPException(status_code=400, detail="start must not be after end")
    return lo, hi


def _select(store: EntityStore, start: Optional[str], end: Optional[str]) -> List[ExpenseEntity]:
    bounds = _parse_range(start, end)
    if bounds is None:
        return store.expenses.list()
    return store.expenses.list_by_date_range(*bounds)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[ExpenseOut],
    summary="List Expenses",
    description=(
        "List expenses, most recent date first.\n\n"
        "Optional inclusive date range:\n"
        "- start: ISO8601 date or datetime\n"
        "- end: ISO8601 date or datetime; a bare date includes the whole day"
    ),
    responses={400: {"description": "Invalid date range"}},
)
def list_expenses(
    start: Optional[str] = Query(None, description="Earliest expense date (inclusive)"),
    end: Optional[str] = Query(None, description="Latest expense date (inclusive)"),
    store: EntityStore = Depends(get_store),
) -> List[ExpenseOut]:
    return [ExpenseOut.model_validate(it) for it in _select(store, start, end)]


# PUBLIC_INTERFACE
@router.get(
    "/summary",
    response_model=ExpenseSummary,
    summary="Summarize Expenses",
    description="Total spent and per-category totals, optionally within a date range.",
    responses={400: {"description": "Invalid date range"}},
)
def summarize_expenses(
    start: Optional[str] = Query(None, description="Earliest expense date (inclusive)"),
    end: Optional[str] = Query(None, description="Latest expense date (inclusive)"),
    store: EntityStore = Depends(get_store),
) -> ExpenseSummary:
    items = _select(store, start, end)
    by_category: Dict[str, Decimal] = defaultdict(lambda: Decimal("0.00"))
    total = Decimal("0.00")
    for it in items:
        total += it["amount"]
        by_category[it["category"]] += it["amount"]
    return ExpenseSummary(total=total, count=len(items), by_category=dict(by_category))


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=ExpenseOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Expense",
    responses={
        201: {"description": "Expense created successfully"},
        422: {"description": "Validation error"},
    },
)
def create_expense(payload: ExpenseCreate, store: EntityStore = Depends(get_store)) -> ExpenseOut:
    """
    Create an expense. Currency defaults to USD and date to now.
    """
    return ExpenseOut.model_validate(store.expenses.create(payload))


# PUBLIC_INTERFACE
@router.delete(
    "/all",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete All Expenses",
    description="Remove every expense. Ids of removed expenses are not handed out again.",
    responses={204: {"description": "All expenses deleted"}},
)
def delete_all_expenses(store: EntityStore = Depends(get_store)) -> Response:
    store.expenses.clear()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# PUBLIC_INTERFACE
@router.get(
    "/{expense_id}",
    response_model=ExpenseOut,
    summary="Get Expense",
    responses={404: {"description": "Expense not found"}},
)
def get_expense(expense_id: int, store: EntityStore = Depends(get_store)) -> ExpenseOut:
    item = store.expenses.get(expense_id)
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found")
    return ExpenseOut.model_validate(item)


# PUBLIC_INTERFACE
@router.put(
    "/{expense_id}",
    response_model=ExpenseOut,
    summary="Update Expense",
    responses={404: {"description": "Expense not found"}},
)
def update_expense(expense_id: int, payload: ExpenseUpdate, store: EntityStore = Depends(get_store)) -> ExpenseOut:
    return ExpenseOut.model_validate(store.expenses.update(expense_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/{expense_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Expense",
    responses={
        204: {"description": "Expense deleted"},
        404: {"description": "Expense not found"},
    },
)
def delete_expense(expense_id: int, store: EntityStore = Depends(get_store)) -> Response:
    store.expenses.delete(expense_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
