"""
Habit Endpoints for the Habit Tracker backend

GET    /api/habits                 - list the caller's habits with streaks
POST   /api/habits                 - create a habit
GET    /api/habits/{id}            - one habit
PUT    /api/habits/{id}            - partial update
DELETE /api/habits/{id}            - delete a habit and its history
POST   /api/habits/{id}/complete   - mark today as done (notifies friends)
DELETE /api/habits/{id}/complete   - undo today's completion
GET    /api/habits/{id}/logs       - completion dates, newest first
"""

import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.exc import IntegrityError

from habit_tracker.api.body import validated
from habit_tracker.api.deps import get_gateway
from habit_tracker.api.schemas import (
    HabitCreate, HabitLogsResponse, HabitResponse, HabitUpdate,
)
from habit_tracker.auth import get_current_session, get_current_user_id
from habit_tracker.database import (
    Habit, HabitLog, friend_ids, get_completion_dates, get_db,
    get_log_for_day, get_user_habit, list_user_habits,
)
from habit_tracker.realtime import RealtimeGateway
from habit_tracker.streaks import compute_streak, utc_today

logger = logging.getLogger(__name__)

router = APIRouter(tags=["habits"])


def habit_to_response(db, habit: Habit) -> HabitResponse:
    dates = get_completion_dates(db, habit.id)
    today = utc_today()
    return HabitResponse(
        id=habit.id,
        name=habit.name,
        description=habit.description,
        frequency=habit.frequency,
        color=habit.color,
        created_at=habit.created_at,
        streak=compute_streak(dates, habit.frequency, today),
        completed_today=today in dates,
    )


def _get_owned(db, user_id: int, habit_id: int) -> Habit:
    habit = get_user_habit(db, user_id, habit_id)
    if habit is None:
        raise HTTPException(status_code=404, detail="Habit not found")
    return habit


@router.get("", response_model=List[HabitResponse])
async def list_habits(user_id: int = Depends(get_current_user_id)):
    def _sync():
        db = get_db()
        try:
            return [habit_to_response(db, h) for h in list_user_habits(db, user_id)]
        finally:
            db.close()

    return await asyncio.to_thread(_sync)


@router.post("", response_model=HabitResponse, status_code=201)
async def create_habit(
    body: HabitCreate = Depends(validated(HabitCreate)),
    user_id: int = Depends(get_current_user_id),
):
    def _sync():
        db = get_db()
        try:
            habit = Habit(user_id=user_id, **body.model_dump())
            db.add(habit)
            db.commit()
            db.refresh(habit)
            return habit_to_response(db, habit)
        finally:
            db.close()

    habit = await asyncio.to_thread(_sync)
    logger.info("Habit %s created by user %s", habit.id, user_id)
    return habit


@router.get("/{habit_id}", response_model=HabitResponse)
async def get_habit(habit_id: int, user_id: int = Depends(get_current_user_id)):
    def _sync():
        db = get_db()
        try:
            return habit_to_response(db, _get_owned(db, user_id, habit_id))
        finally:
            db.close()

    return await asyncio.to_thread(_sync)


@router.put("/{habit_id}", response_model=HabitResponse)
async def update_habit(
    habit_id: int,
    body: HabitUpdate = Depends(validated(HabitUpdate)),
    user_id: int = Depends(get_current_user_id),
):
    """Apply the fields present in the body; absent fields are left alone."""
    changes = body.model_dump(exclude_unset=True)
    if changes.get("name", "") is None or changes.get("frequency", "") is None:
        raise HTTPException(status_code=400, detail="name and frequency cannot be null")

    def _sync():
        db = get_db()
        try:
            habit = _get_owned(db, user_id, habit_id)
            for key, value in changes.items():
                setattr(habit, key, value)
            db.commit()
            db.refresh(habit)
            return habit_to_response(db, habit)
        finally:
            db.close()

    return await asyncio.to_thread(_sync)


@router.delete("/{habit_id}", status_code=204)
async def delete_habit(habit_id: int, user_id: int = Depends(get_current_user_id)):
    def _sync():
        db = get_db()
        try:
            habit = _get_owned(db, user_id, habit_id)
            db.query(HabitLog).filter(HabitLog.habit_id == habit.id).delete()
            db.delete(habit)
            db.commit()
        finally:
            db.close()

    await asyncio.to_thread(_sync)
    return Response(status_code=204)


@router.post("/{habit_id}/complete", response_model=HabitResponse)
async def complete_habit(
    habit_id: int,
    session: dict = Depends(get_current_session),
    gateway: RealtimeGateway = Depends(get_gateway),
):
    """Log today's completion and tell online friends about it."""
    user_id = int(session["sub"])

    def _sync():
        db = get_db()
        try:
            habit = _get_owned(db, user_id, habit_id)
            today = utc_today()
            if get_log_for_day(db, habit.id, today) is not None:
                raise HTTPException(status_code=409, detail="Habit already completed today")
            db.add(HabitLog(habit_id=habit.id, completed_on=today))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise HTTPException(status_code=409, detail="Habit already completed today")
            return habit_to_response(db, habit), friend_ids(db, user_id)
        finally:
            db.close()

    habit, friends = await asyncio.to_thread(_sync)
    if friends:
        await gateway.emit_to_users(
            friends,
            "habit:completed",
            {
                "habit_id": habit.id,
                "habit_name": habit.name,
                "user_id": user_id,
                "username": session.get("username"),
                "streak": habit.streak,
            },
        )
    return habit


@router.delete("/{habit_id}/complete", response_model=HabitResponse)
async def uncomplete_habit(habit_id: int, user_id: int = Depends(get_current_user_id)):
    def _sync():
        db = get_db()
        try:
            habit = _get_owned(db, user_id, habit_id)
            log = get_log_for_day(db, habit.id, utc_today())
            if log is None:
                raise HTTPException(status_code=404, detail="Habit not completed today")
            db.delete(log)
            db.commit()
            return habit_to_response(db, habit)
        finally:
            db.close()

    return await asyncio.to_thread(_sync)


@router.get("/{habit_id}/logs", response_model=HabitLogsResponse)
async def habit_logs(
    habit_id: int,
    days: int = Query(30, ge=1, le=366),
    user_id: int = Depends(get_current_user_id),
):
    def _sync():
        db = get_db()
        try:
            habit = _get_owned(db, user_id, habit_id)
            dates = get_completion_dates(db, habit.id, days=days)
            return HabitLogsResponse(habit_id=habit.id, dates=dates, total=len(dates))
        finally:
            db.close()

    return await asyncio.to_thread(_sync)
