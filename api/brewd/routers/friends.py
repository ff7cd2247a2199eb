"""Friendship endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import schemas
from ..auth import get_current_user_id
from ..deps import get_db, get_deadline, get_graph
from ..services.friendship import FriendshipGraph
from ..transactions import Deadline

router = APIRouter(prefix="/friends", tags=["Friends"])


@router.get("/", response_model=list[schemas.Connection])
def list_friends(
    db: Session = Depends(get_db),
    graph: FriendshipGraph = Depends(get_graph),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> list[schemas.Connection]:
    """List the current user's friends, ordered by username."""
    friends = graph.list_friends(db, current_user_id, deadline=deadline)
    return [schemas.Connection.model_validate(f) for f in friends]


@router.get("/count", response_model=schemas.FriendCount)
def friend_count(
    db: Session = Depends(get_db),
    graph: FriendshipGraph = Depends(get_graph),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> schemas.FriendCount:
    count = graph.friend_count(db, current_user_id, deadline=deadline)
    return schemas.FriendCount(user_id=current_user_id, friend_count=count)


@router.get("/requests/received", response_model=list[schemas.Connection])
def pending_received(
    db: Session = Depends(get_db),
    graph: FriendshipGraph = Depends(get_graph),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> list[schemas.Connection]:
    """Incoming friend requests, newest first."""
    pending = graph.pending_received(db, current_user_id, deadline=deadline)
    return [schemas.Connection.model_validate(p) for p in pending]


@router.get("/requests/sent", response_model=list[schemas.Connection])
def pending_sent(
    db: Session = Depends(get_db),
    graph: FriendshipGraph = Depends(get_graph),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> list[schemas.Connection]:
    """Outgoing friend requests, newest first."""
    pending = graph.pending_sent(db, current_user_id, deadline=deadline)
    return [schemas.Connection.model_validate(p) for p in pending]


@router.get("/blocked", response_model=list[schemas.Connection])
def blocked_users(
    db: Session = Depends(get_db),
    graph: FriendshipGraph = Depends(get_graph),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> list[schemas.Connection]:
    blocked = graph.blocked_users(db, current_user_id, deadline=deadline)
    return [schemas.Connection.model_validate(b) for b in blocked]


@router.get("/status/{user_id}", response_model=schemas.FriendStatusResponse)
def friendship_status(
    user_id: str,
    db: Session = Depends(get_db),
    graph: FriendshipGraph = Depends(get_graph),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> schemas.FriendStatusResponse:
    """Status of both directed edges between the current user and ``user_id``."""
    return schemas.FriendStatusResponse(
        user_id=current_user_id,
        other_id=user_id,
        status=graph.status(db, current_user_id, user_id, deadline=deadline).value,
        reverse_status=graph.status(db, user_id, current_user_id, deadline=deadline).value,
    )


@router.get("/mutual/{user_id}", response_model=list[schemas.Connection])
def mutual_friends(
    user_id: str,
    db: Session = Depends(get_db),
    graph: FriendshipGraph = Depends(get_graph),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> list[schemas.Connection]:
    mutual = graph.mutual_friends(db, current_user_id, user_id, deadline=deadline)
    return [schemas.Connection.model_validate(m) for m in mutual]


@router.post(
    "/requests/{user_id}",
    status_code=status.HTTP_201_CREATED,
    response_model=schemas.FriendshipChange,
)
def send_request(
    user_id: str,
    db: Session = Depends(get_db),
    graph: FriendshipGraph = Depends(get_graph),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> schemas.FriendshipChange:
    """Send a friend request to ``user_id``."""
    graph.send_request(db, current_user_id, user_id, deadline=deadline)
    return schemas.FriendshipChange(message="Friend request sent")


@router.post("/requests/{user_id}/accept", response_model=schemas.FriendshipChange)
def accept_request(
    user_id: str,
    db: Session = Depends(get_db),
    graph: FriendshipGraph = Depends(get_graph),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> schemas.FriendshipChange:
    """Accept the pending request ``user_id`` sent to the current user."""
    graph.accept_request(db, user_id, current_user_id, deadline=deadline)
    return schemas.FriendshipChange(message="Friend request accepted")


@router.post("/requests/{user_id}/reject", response_model=schemas.FriendshipChange)
def reject_request(
    user_id: str,
    db: Session = Depends(get_db),
    graph: FriendshipGraph = Depends(get_graph),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> schemas.FriendshipChange:
    graph.reject_request(db, user_id, current_user_id, deadline=deadline)
    return schemas.FriendshipChange(message="Friend request rejected")


@router.delete("/requests/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_request(
    user_id: str,
    db: Session = Depends(get_db),
    graph: FriendshipGraph = Depends(get_graph),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> None:
    """Withdraw a request the current user sent."""
    graph.cancel_request(db, current_user_id, user_id, deadline=deadline)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def unfriend(
    user_id: str,
    db: Session = Depends(get_db),
    graph: FriendshipGraph = Depends(get_graph),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> None:
    graph.unfriend(db, current_user_id, user_id, deadline=deadline)


@router.post("/{user_id}/block", response_model=schemas.FriendshipChange)
def block_user(
    user_id: str,
    db: Session = Depends(get_db),
    graph: FriendshipGraph = Depends(get_graph),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> schemas.FriendshipChange:
    """
    Block ``user_id``.

    An existing friendship is kept; unfriend separately to remove it.
    """
    graph.block(db, current_user_id, user_id, deadline=deadline)
    return schemas.FriendshipChange(message="User blocked")


@router.delete("/{user_id}/block", status_code=status.HTTP_204_NO_CONTENT)
def unblock_user(
    user_id: str,
    db: Session = Depends(get_db),
    graph: FriendshipGraph = Depends(get_graph),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> None:
    graph.unblock(db, current_user_id, user_id, deadline=deadline)
