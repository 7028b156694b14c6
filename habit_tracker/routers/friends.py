"""
Friend Endpoints for the Habit Tracker backend

GET    /api/friends                       - accepted friends with online state
GET    /api/friends/requests              - incoming pending requests
POST   /api/friends/requests              - send a request by username
POST   /api/friends/requests/{id}/accept  - accept an incoming request
POST   /api/friends/requests/{id}/decline - decline an incoming request
DELETE /api/friends/{user_id}             - remove a friend
GET    /api/friends/{user_id}/habits      - a friend's habits with streaks
"""

import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response

from habit_tracker.api.body import validated
from habit_tracker.api.deps import get_gateway
from habit_tracker.api.schemas import (
    FriendRequestCreate, FriendRequestResponse, FriendResponse, HabitResponse,
)
from habit_tracker.auth import get_current_user_id
from habit_tracker.database import (
    Friendship, User, are_friends, friend_ids, get_db, get_friendship_between,
    get_user, get_user_by_username, list_user_habits, pending_requests_for,
)
from habit_tracker.realtime import RealtimeGateway
from habit_tracker.routers.habits import habit_to_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["friends"])


def _friend(user: User, gateway: RealtimeGateway) -> FriendResponse:
    return FriendResponse(
        id=user.id,
        username=user.username,
        avatar_url=user.avatar_url,
        online=gateway.is_online(user.id),
    )


def _request_to_response(db, row: Friendship, gateway: RealtimeGateway) -> FriendRequestResponse:
    return FriendRequestResponse(
        id=row.id,
        status=row.status,
        created_at=row.created_at,
        requester=_friend(get_user(db, row.requester_id), gateway),
        addressee=_friend(get_user(db, row.addressee_id), gateway),
    )


def _incoming_request(db, request_id: int, user_id: int) -> Friendship:
    row = db.get(Friendship, request_id)
    if row is None or row.addressee_id != user_id or row.status != "pending":
        raise HTTPException(status_code=404, detail="Friend request not found")
    return row


@router.get("", response_model=List[FriendResponse])
async def list_friends(
    user_id: int = Depends(get_current_user_id),
    gateway: RealtimeGateway = Depends(get_gateway),
):
    def _sync():
        db = get_db()
        try:
            users = [get_user(db, fid) for fid in friend_ids(db, user_id)]
            users = sorted((u for u in users if u is not None), key=lambda u: u.username.lower())
            return [_friend(u, gateway) for u in users]
        finally:
            db.close()

    return await asyncio.to_thread(_sync)


@router.get("/requests", response_model=List[FriendRequestResponse])
async def list_requests(
    user_id: int = Depends(get_current_user_id),
    gateway: RealtimeGateway = Depends(get_gateway),
):
    def _sync():
        db = get_db()
        try:
            return [_request_to_response(db, r, gateway) for r in pending_requests_for(db, user_id)]
        finally:
            db.close()

    return await asyncio.to_thread(_sync)


@router.post("/requests", response_model=FriendRequestResponse, status_code=201)
async def send_request(
    body: FriendRequestCreate = Depends(validated(FriendRequestCreate)),
    user_id: int = Depends(get_current_user_id),
    gateway: RealtimeGateway = Depends(get_gateway),
):
    def _sync():
        db = get_db()
        try:
            target = get_user_by_username(db, body.username.strip())
            if target is None:
                raise HTTPException(status_code=404, detail="User not found")
            if target.id == user_id:
                raise HTTPException(status_code=400, detail="You cannot befriend yourself")
            existing = get_friendship_between(db, user_id, target.id)
            if existing is not None:
                detail = "Already friends" if existing.status == "accepted" else "Friend request already pending"
                raise HTTPException(status_code=409, detail=detail)
            row = Friendship(requester_id=user_id, addressee_id=target.id, status="pending")
            db.add(row)
            db.commit()
            db.refresh(row)
            return _request_to_response(db, row, gateway)
        finally:
            db.close()

    result = await asyncio.to_thread(_sync)
    logger.info("Friend request %s: %s -> %s", result.id, user_id, result.addressee.id)
    await gateway.emit_to_user(
        result.addressee.id,
        "friend:request",
        result.model_dump(mode="json"),
    )
    return result


@router.post("/requests/{request_id}/accept", response_model=FriendRequestResponse)
async def accept_request(
    request_id: int,
    user_id: int = Depends(get_current_user_id),
    gateway: RealtimeGateway = Depends(get_gateway),
):
    def _sync():
        db = get_db()
        try:
            row = _incoming_request(db, request_id, user_id)
            row.status = "accepted"
            db.commit()
            db.refresh(row)
            return _request_to_response(db, row, gateway)
        finally:
            db.close()

    result = await asyncio.to_thread(_sync)
    await gateway.emit_to_user(
        result.requester.id,
        "friend:accepted",
        result.addressee.model_dump(mode="json"),
    )
    return result


@router.post("/requests/{request_id}/decline", status_code=204)
async def decline_request(request_id: int, user_id: int = Depends(get_current_user_id)):
    def _sync():
        db = get_db()
        try:
            db.delete(_incoming_request(db, request_id, user_id))
            db.commit()
        finally:
            db.close()

    await asyncio.to_thread(_sync)
    return Response(status_code=204)


@router.delete("/{friend_id}", status_code=204)
async def remove_friend(friend_id: int, user_id: int = Depends(get_current_user_id)):
    def _sync():
        db = get_db()
        try:
            row = get_friendship_between(db, user_id, friend_id)
            if row is None or row.status != "accepted":
                raise HTTPException(status_code=404, detail="Friend not found")
            db.delete(row)
            db.commit()
        finally:
            db.close()

    await asyncio.to_thread(_sync)
    return Response(status_code=204)


@router.get("/{friend_id}/habits", response_model=List[HabitResponse])
async def friend_habits(friend_id: int, user_id: int = Depends(get_current_user_id)):
    def _sync():
        db = get_db()
        try:
            if not are_friends(db, user_id, friend_id):
                raise HTTPException(status_code=403, detail="Not friends with this user")
            return [habit_to_response(db, h) for h in list_user_habits(db, friend_id)]
        finally:
            db.close()

    return await asyncio.to_thread(_sync)
