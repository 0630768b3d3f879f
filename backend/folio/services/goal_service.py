"""
Goal Tracker.

CRUD for financial goals plus pure projection math: months remaining,
amount remaining, recommended monthly contribution and progress.
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from folio.core.database import AsyncSessionLocal
from folio.core.errors import NotFoundError, ValidationError
from folio.models.enums import PRIORITY_RANK, GoalPriority, GoalType
from folio.models.goal import Goal
from folio.services.catalog_service import normalize_symbol
from folio.services.valuation_engine import HoldingValuation

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")

STATUS_ON_TRACK = "on_track"
STATUS_ACHIEVED = "achieved"
STATUS_OVERDUE = "overdue"

UPDATABLE_FIELDS = {"name", "description", "target_amount", "current_amount", "deadline", "priority", "goal_type"}


@dataclass
class GoalProjection:
    goal_id: Optional[int]
    current_amount: Decimal
    months_remaining: int
    amount_remaining: Decimal
    # None exactly when status is overdue
    recommended_monthly_contribution: Optional[Decimal]
    progress_percent: Decimal
    status: str
    time_remaining: str

    @property
    def overdue(self) -> bool:
        return self.status == STATUS_OVERDUE


def calendar_months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start`` to ``end`` (year*12 + month), may be negative."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def describe_time_remaining(months: int) -> str:
    years, rem = divmod(max(months, 0), 12)
    if years > 0 and rem > 0:
        return f"{years} year{'s' if years != 1 else ''} and {rem} month{'s' if rem != 1 else ''}"
    if years > 0:
        return f"{years} year{'s' if years != 1 else ''}"
    if rem > 0:
        return f"{rem} month{'s' if rem != 1 else ''}"
    return "Less than a month"


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def _linked_value(goal: Goal, snapshot: Optional[Iterable[HoldingValuation]]) -> Optional[Decimal]:
    if snapshot is None or not goal.linked_symbol:
        return None
    for holding in snapshot:
        if holding.symbol == goal.linked_symbol:
            return holding.market_value
    # Linked but no longer held
    return ZERO


def project_goal(
    goal: Goal,
    valuation_snapshot: Optional[Iterable[HoldingValuation]] = None,
    today: Optional[date] = None,
) -> GoalProjection:
    """
    Project a goal as of ``today``.

    When the goal is linked to a holding and a valuation snapshot is given,
    the holding's market value stands in for the stored current amount.
    """
    today = today or date.today()
    target = Decimal(str(goal.target_amount))
    linked = _linked_value(goal, valuation_snapshot)
    current = linked if linked is not None else Decimal(str(goal.current_amount or 0))

    months = max(0, calendar_months_between(today, goal.deadline))
    remaining = max(ZERO, target - current)
    progress = min(HUNDRED, max(ZERO, current / target * HUNDRED)) if target > 0 else ZERO

    if remaining == ZERO:
        status = STATUS_ACHIEVED
        monthly: Optional[Decimal] = ZERO
    elif months > 0:
        status = STATUS_ON_TRACK
        monthly = _money(remaining / months)
    else:
        status = STATUS_OVERDUE
        monthly = None

    return GoalProjection(
        goal_id=goal.id,
        current_amount=_money(current),
        months_remaining=months,
        amount_remaining=_money(remaining),
        recommended_monthly_contribution=monthly,
        progress_percent=progress.quantize(CENTS, rounding=ROUND_HALF_UP),
        status=status,
        time_remaining=describe_time_remaining(months),
    )


def top_goals(goals: Iterable[Goal], limit: int) -> List[Goal]:
    """High priority first, then the nearest deadline."""
    ranked = sorted(
        goals,
        key=lambda g: (PRIORITY_RANK.get(g.priority, len(PRIORITY_RANK)), g.deadline, g.id or 0),
    )
    return ranked[:limit]


def _amount(value, field: str, allow_zero: bool) -> Decimal:
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}", field=field) from None
    if not number.is_finite() or number < 0 or (number == 0 and not allow_zero):
        qualifier = "non-negative" if allow_zero else "positive"
        raise ValidationError(f"{field} must be {qualifier}, got {value}", field=field)
    return number


def _enum_value(enum_cls, value, field: str) -> str:
    try:
        return enum_cls((value or "").strip().lower()).value
    except ValueError:
        allowed = ", ".join(v.value for v in enum_cls)
        raise ValidationError(f"Unknown {field} '{value}' (expected one of: {allowed})", field=field) from None


def _future_deadline(deadline: date, today: date) -> date:
    if isinstance(deadline, datetime):
        deadline = deadline.date()
    if not isinstance(deadline, date):
        raise ValidationError("deadline must be a date", field="deadline")
    if deadline <= today:
        raise ValidationError(f"deadline {deadline} must be after {today}", field="deadline")
    return deadline


class GoalService:
    """Create, update, contribute to and delete goals."""

    def __init__(self, session: Optional[AsyncSession] = None):
        self.session = session

    async def create(
        self,
        user_id: str,
        name: str,
        target_amount,
        deadline: date,
        current_amount=0,
        priority: str = GoalPriority.MEDIUM.value,
        goal_type: str = GoalType.OTHER.value,
        description: Optional[str] = None,
        linked_symbol: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Goal:
        today = today or date.today()
        name = (name or "").strip()
        if not name:
            raise ValidationError("Goal name is required", field="name")

        goal = Goal(
            user_id=user_id,
            name=name,
            description=description,
            target_amount=_amount(target_amount, "target_amount", allow_zero=False),
            current_amount=_amount(current_amount, "current_amount", allow_zero=True),
            deadline=_future_deadline(deadline, today),
            priority=_enum_value(GoalPriority, priority, "priority"),
            goal_type=_enum_value(GoalType, goal_type, "goal_type"),
            linked_symbol=normalize_symbol(linked_symbol) if linked_symbol else None,
        )

        async with self._get_session() as session:
            session.add(goal)
            await session.flush()
            await session.refresh(goal)

        logger.info(f"Created goal {goal.id} '{goal.name}' for user {user_id}")
        return goal

    async def list_goals(self, user_id: str) -> List[Goal]:
        async with self._get_session() as session:
            stmt = select(Goal).where(Goal.user_id == user_id).order_by(Goal.deadline.asc(), Goal.id.asc())
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get(self, user_id: str, goal_id: int) -> Goal:
        async with self._get_session() as session:
            return await self._load(session, user_id, goal_id)

    async def update(self, user_id: str, goal_id: int, today: Optional[date] = None, **changes: Any) -> Goal:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        today = today or date.today()

        values: Dict[str, Any] = {}
        for key, value in changes.items():
            if value is None:
                continue
            if key == "name":
                value = value.strip()
                if not value:
                    raise ValidationError("Goal name is required", field="name")
            elif key == "target_amount":
                value = _amount(value, key, allow_zero=False)
            elif key == "current_amount":
                value = _amount(value, key, allow_zero=True)
            elif key == "deadline":
                value = _future_deadline(value, today)
            elif key == "priority":
                value = _enum_value(GoalPriority, value, key)
            elif key == "goal_type":
                value = _enum_value(GoalType, value, key)
            values[key] = value

        async with self._get_session() as session:
            goal = await self._load(session, user_id, goal_id)
            for key, value in values.items():
                setattr(goal, key, value)
            await session.flush()
            await session.refresh(goal)
            return goal

    async def contribute(self, user_id: str, goal_id: int, amount) -> Goal:
        amount = _amount(amount, "amount", allow_zero=False)
        async with self._get_session() as session:
            goal = await self._load(session, user_id, goal_id)
            goal.current_amount = Decimal(str(goal.current_amount or 0)) + amount
            await session.flush()
            await session.refresh(goal)

        logger.info(f"Goal {goal_id}: contribution of {amount}, now {goal.current_amount}")
        return goal

    async def link_holding(self, user_id: str, goal_id: int, symbol: Optional[str]) -> Goal:
        """Tie the goal's progress to a holding's market value; None unlinks."""
        linked = normalize_symbol(symbol) if symbol else None
        async with self._get_session() as session:
            goal = await self._load(session, user_id, goal_id)
            goal.linked_symbol = linked
            await session.flush()
            await session.refresh(goal)
            return goal

    async def sync_linked(self, user_id: str, holdings: Iterable[HoldingValuation]) -> int:
        """Persist linked holdings' market values as current amounts."""
        holdings = list(holdings)
        updated = 0
        async with self._get_session() as session:
            stmt = select(Goal).where(Goal.user_id == user_id, Goal.linked_symbol.is_not(None))
            result = await session.execute(stmt)
            for goal in result.scalars().all():
                value = _linked_value(goal, holdings)
                goal.current_amount = _money(value)
                updated += 1
            await session.flush()
        return updated

    async def delete(self, user_id: str, goal_id: int) -> None:
        async with self._get_session() as session:
            goal = await self._load(session, user_id, goal_id)
            await session.delete(goal)
            await session.flush()
        logger.info(f"Deleted goal {goal_id} for user {user_id}")

    def project(
        self,
        goal: Goal,
        valuation_snapshot: Optional[Iterable[HoldingValuation]] = None,
        today: Optional[date] = None,
    ) -> GoalProjection:
        return project_goal(goal, valuation_snapshot, today=today)

    async def _load(self, session: AsyncSession, user_id: str, goal_id: int) -> Goal:
        result = await session.execute(
            select(Goal).where(Goal.id == goal_id, Goal.user_id == user_id)
        )
        goal = result.scalar_one_or_none()
        if goal is None:
            raise NotFoundError(f"Goal {goal_id} not found", goal_id=goal_id)
        return goal

    @asynccontextmanager
    async def _get_session(self):
        if self.session is not None:
            yield self.session
        else:
            async with AsyncSessionLocal() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
