"""
SQL persistence for the experience ledger.

Maintains the same API contract as InMemoryExperienceLedger. Running totals
are updated with a single ``total = total + amount`` statement so concurrent
awards for the same (user, category) do not lose increments.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

from sqlalchemy import and_, case, func, insert, select, update
from sqlalchemy.exc import IntegrityError

from habitforge.core.database import experience_transactions, make_session_scope, user_category_experience
from habitforge.models.experience import (
    CategoryExperience,
    ExperienceTransaction,
    LedgerStats,
    StreakBonusStats,
    TransactionType,
)

uce = user_category_experience
etx = experience_transactions


def _aware(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _total_from_row(row) -> CategoryExperience:
    return CategoryExperience(
        user_id=row.user_id,
        category_id=row.category_id,
        total_experience=row.total_experience,
    )


def _transaction_from_row(row) -> ExperienceTransaction:
    return ExperienceTransaction(
        id=row.id,
        user_id=row.user_id,
        category_id=row.category_id,
        type=TransactionType(row.type),
        experience_gained=row.experience_gained,
        habit_task_id=row.habit_task_id,
        streak_count=row.streak_count,
        multiplier=float(row.multiplier) if row.multiplier is not None else None,
        description=row.description,
        created_at=_aware(row.created_at),
    )


class SqlExperienceLedger:
    """SQLAlchemy Core implementation of ExperienceLedger."""

    def __init__(self, session_factory):
        self._scope = make_session_scope(session_factory)

    # Running totals -------------------------------------------------------
    def _select_total(self, session, user_id: str, category_id: str):
        return session.execute(
            select(uce).where(and_(uce.c.user_id == user_id, uce.c.category_id == category_id))
        ).first()

    def get_or_create(self, user_id: str, category_id: str, *, now: datetime) -> CategoryExperience:
        with self._scope() as session:
            row = self._select_total(session, user_id, category_id)
        if row is not None:
            return _total_from_row(row)
        try:
            with self._scope() as session:
                session.execute(
                    insert(uce).values(
                        id=str(uuid4()),
                        user_id=user_id,
                        category_id=category_id,
                        total_experience=0,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError:
            # Created concurrently; the row exists either way
            pass
        with self._scope() as session:
            return _total_from_row(self._select_total(session, user_id, category_id))

    def add_experience(self, user_id: str, category_id: str, amount: int, *, now: datetime) -> CategoryExperience:
        self.get_or_create(user_id, category_id, now=now)
        new_total = uce.c.total_experience + amount
        with self._scope() as session:
            session.execute(
                update(uce)
                .where(and_(uce.c.user_id == user_id, uce.c.category_id == category_id))
                .values(total_experience=case((new_total < 0, 0), else_=new_total), updated_at=now)
            )
            return _total_from_row(self._select_total(session, user_id, category_id))

    def set_total(self, user_id: str, category_id: str, total: int, *, now: datetime) -> CategoryExperience:
        self.get_or_create(user_id, category_id, now=now)
        with self._scope() as session:
            session.execute(
                update(uce)
                .where(and_(uce.c.user_id == user_id, uce.c.category_id == category_id))
                .values(total_experience=max(0, total), updated_at=now)
            )
            return _total_from_row(self._select_total(session, user_id, category_id))

    def get_category_experience(self, user_id: str, category_id: str) -> Optional[CategoryExperience]:
        with self._scope() as session:
            row = self._select_total(session, user_id, category_id)
        return _total_from_row(row) if row else None

    def get_total(self, user_id: str) -> int:
        query = select(func.coalesce(func.sum(uce.c.total_experience), 0)).where(uce.c.user_id == user_id)
        with self._scope() as session:
            return int(session.execute(query).scalar() or 0)

    def get_category_experiences(self, user_id: str) -> List[CategoryExperience]:
        with self._scope() as session:
            rows = session.execute(
                select(uce).where(uce.c.user_id == user_id).order_by(uce.c.total_experience.desc())
            ).all()
        return [_total_from_row(row) for row in rows]

    def list_category_totals(self, category_id: Optional[str] = None) -> List[CategoryExperience]:
        query = select(uce).order_by(uce.c.total_experience.desc())
        if category_id:
            query = query.where(uce.c.category_id == category_id)
        with self._scope() as session:
            rows = session.execute(query).all()
        return [_total_from_row(row) for row in rows]

    # Transactions ---------------------------------------------------------
    def append(self, transaction: ExperienceTransaction) -> ExperienceTransaction:
        with self._scope() as session:
            session.execute(
                insert(etx).values(
                    id=transaction.id,
                    user_id=transaction.user_id,
                    category_id=transaction.category_id,
                    habit_task_id=transaction.habit_task_id,
                    type=transaction.type.value,
                    experience_gained=transaction.experience_gained,
                    streak_count=transaction.streak_count,
                    multiplier=transaction.multiplier,
                    description=transaction.description,
                    created_at=transaction.created_at,
                )
            )
        return transaction

    def query_history(
        self, user_id: str, *, limit: int, offset: int = 0, category_id: Optional[str] = None
    ) -> List[ExperienceTransaction]:
        query = select(etx).where(etx.c.user_id == user_id)
        if category_id:
            query = query.where(etx.c.category_id == category_id)
        query = query.order_by(etx.c.created_at.desc()).offset(offset).limit(limit)
        with self._scope() as session:
            rows = session.execute(query).all()
        return [_transaction_from_row(row) for row in rows]

    def aggregate_stats(self, user_id: str, category_id: str) -> LedgerStats:
        query = select(
            func.sum(etx.c.experience_gained).label("total"),
            func.count().label("row_count"),
            func.avg(etx.c.experience_gained).label("average"),
            func.max(etx.c.experience_gained).label("maximum"),
            func.min(etx.c.experience_gained).label("minimum"),
        ).where(and_(etx.c.user_id == user_id, etx.c.category_id == category_id))
        with self._scope() as session:
            row = session.execute(query).first()
        if row is None or not row.row_count:
            return LedgerStats()
        return LedgerStats(
            total_experience=int(row.total or 0),
            total_transactions=int(row.row_count),
            average_experience=float(row.average or 0),
            max_experience=int(row.maximum or 0),
            min_experience=int(row.minimum or 0),
        )

    def streak_bonus_stats(self, user_id: str, category_id: Optional[str] = None) -> StreakBonusStats:
        bonus = etx.c.experience_gained - (etx.c.experience_gained / etx.c.multiplier)
        query = select(
            func.max(bonus).label("highest"),
            func.avg(etx.c.streak_count).label("average_count"),
            func.count().label("row_count"),
        ).where(
            and_(
                etx.c.user_id == user_id,
                etx.c.streak_count.isnot(None),
                etx.c.multiplier > 1,
            )
        )
        if category_id:
            query = query.where(etx.c.category_id == category_id)
        with self._scope() as session:
            row = session.execute(query).first()
        if row is None or not row.row_count:
            return StreakBonusStats()
        return StreakBonusStats(
            highest_streak_bonus=float(row.highest or 0),
            average_streak_count=float(row.average_count or 0),
            total_streak_bonuses=int(row.row_count),
        )

    def total_gained_between(self, user_id: str, start: datetime, end: datetime) -> int:
        query = select(func.coalesce(func.sum(etx.c.experience_gained), 0)).where(
            and_(etx.c.user_id == user_id, etx.c.created_at >= start, etx.c.created_at < end)
        )
        with self._scope() as session:
            return int(session.execute(query).scalar() or 0)

    def sum_by_category(self, user_id: str) -> Dict[str, int]:
        query = (
            select(etx.c.category_id, func.sum(etx.c.experience_gained).label("total"))
            .where(etx.c.user_id == user_id)
            .group_by(etx.c.category_id)
        )
        with self._scope() as session:
            rows = session.execute(query).all()
        return {row.category_id: int(row.total or 0) for row in rows}
