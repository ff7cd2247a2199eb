"""
Friendship Graph.

Enforces the friend-request state machine on top of the friend_edge table.

Storage model (one row per ordered pair, unique on (owner, other)):
- pending:  (requester, recipient, pending), one row
- accepted: (a, b, accepted) and (b, a, accepted), always both
- blocked:  (blocker, blocked, blocked), says nothing about the reverse row

Both writes of an accept and both deletes of an unfriend happen inside one
method and one transaction, so no caller can issue them independently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, delete, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from .. import models
from ..errors import Conflict, InvariantViolation, NotFound
from ..models import FriendStatus
from ..settings import SocialSettings
from ..transactions import Deadline, run_in_transaction
from .social_notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

Edge = models.FriendEdge


@dataclass(frozen=True)
class Connection:
    """Another user seen through one friend edge."""

    user_id: str
    username: str
    profile_picture_url: str | None
    since: datetime


class FriendshipGraph:
    """Sole writer of the friend_edge table."""

    def __init__(self, settings: SocialSettings, notifications: NotificationDispatcher) -> None:
        self.settings = settings
        self.notifications = notifications

    def _run(self, db: Session, operation: str, key, work, deadline: Deadline | None):
        return run_in_transaction(
            db,
            operation,
            key,
            work,
            deadline=deadline or Deadline.after(self.settings.request_deadline_seconds),
            retries=self.settings.transaction_retries,
        )

    # =========================================================================
    # State transitions
    # =========================================================================

    def send_request(
        self,
        db: Session,
        requester_id: str,
        recipient_id: str,
        *,
        deadline: Deadline | None = None,
    ) -> None:
        """
        Create a pending request from ``requester_id`` to ``recipient_id``.

        Raises:
            InvariantViolation: requester and recipient are the same user
            Conflict: a row already exists in either direction
            NotFound: the recipient does not exist
        """
        key = (requester_id, recipient_id)
        if requester_id == recipient_id:
            raise InvariantViolation(
                "Cannot send a friend request to yourself", operation="send_request", key=key
            )

        def work(session: Session) -> None:
            recipient = session.scalar(select(models.User.id).where(models.User.id == recipient_id))
            if recipient is None:
                raise NotFound("User not found", operation="send_request", key=key)

            existing = session.execute(
                select(Edge.owner_id, Edge.status)
                .where(_either_direction(requester_id, recipient_id))
                .with_for_update()
            ).first()
            if existing is not None:
                raise Conflict(
                    _conflict_message(existing.owner_id == requester_id, existing.status),
                    operation="send_request",
                    key=key,
                )

            now = models.utcnow()
            try:
                with session.begin_nested():
                    session.execute(
                        insert(Edge).values(
                            {
                                Edge.owner_id: requester_id,
                                Edge.other_id: recipient_id,
                                Edge.status: FriendStatus.PENDING.value,
                                Edge.created_at: now,
                                Edge.updated_at: now,
                            }
                        )
                    )
            except IntegrityError as exc:
                raced = session.scalar(
                    select(Edge.status).where(_either_direction(requester_id, recipient_id))
                )
                if raced is None:
                    raise
                # Lost a race with a concurrent request for the same pair
                raise Conflict(
                    "A friend request already exists", operation="send_request", key=key
                ) from exc

        self._run(db, "send_request", key, work, deadline)
        logger.info(f"Friend request sent {requester_id} -> {recipient_id}")

        self.notifications.notify_after_commit(
            db,
            recipient_id=recipient_id,
            actor_id=requester_id,
            notification_type="friend_request",
            reference_id=requester_id,
            reference_type="friendship",
            deadline=deadline,
        )

    def accept_request(
        self,
        db: Session,
        requester_id: str,
        accepter_id: str,
        *,
        deadline: Deadline | None = None,
    ) -> None:
        """
        Accept ``requester_id``'s pending request, creating both accepted rows.

        Repeating an accept, or losing the race against a concurrent accept of
        the same request, returns successfully without creating a third row.

        Raises:
            NotFound: there is no pending request from requester to accepter
            Conflict: the accepter has blocked the requester
        """
        key = (requester_id, accepter_id)

        def work(session: Session) -> None:
            now = models.utcnow()
            promoted = session.execute(
                update(Edge)
                .where(
                    Edge.owner_id == requester_id,
                    Edge.other_id == accepter_id,
                    Edge.status == FriendStatus.PENDING.value,
                )
                .values(status=FriendStatus.ACCEPTED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount

            if not promoted:
                if self._already_friends(session, requester_id, accepter_id):
                    logger.info(f"Friend request {key} was already accepted")
                    return
                raise NotFound(
                    "Friend request not found", operation="accept_request", key=key
                )

            try:
                with session.begin_nested():
                    session.execute(
                        insert(Edge).values(
                            {
                                Edge.owner_id: accepter_id,
                                Edge.other_id: requester_id,
                                Edge.status: FriendStatus.ACCEPTED.value,
                                Edge.created_at: now,
                                Edge.updated_at: now,
                            }
                        )
                    )
            except IntegrityError:
                self._recover_reverse_edge(session, accepter_id, requester_id, now)

        self._run(db, "accept_request", key, work, deadline)
        logger.info(f"Friendship accepted between {requester_id} and {accepter_id}")

    def reject_request(
        self,
        db: Session,
        requester_id: str,
        recipient_id: str,
        *,
        deadline: Deadline | None = None,
    ) -> None:
        """
        Delete the pending request (requester, recipient).

        Used both to reject an incoming request and to cancel an outgoing one.

        Raises:
            NotFound: there is no such pending request
        """
        key = (requester_id, recipient_id)

        def work(session: Session) -> None:
            deleted = session.execute(
                delete(Edge)
                .where(
                    Edge.owner_id == requester_id,
                    Edge.other_id == recipient_id,
                    Edge.status == FriendStatus.PENDING.value,
                )
                .execution_options(synchronize_session=False)
            ).rowcount
            if not deleted:
                raise NotFound("Friend request not found", operation="reject_request", key=key)

        self._run(db, "reject_request", key, work, deadline)
        logger.info(f"Friend request {requester_id} -> {recipient_id} removed")

    def cancel_request(
        self,
        db: Session,
        requester_id: str,
        recipient_id: str,
        *,
        deadline: Deadline | None = None,
    ) -> None:
        """Withdraw an outgoing request; the requester's side of ``reject_request``."""
        self.reject_request(db, requester_id, recipient_id, deadline=deadline)

    def unfriend(
        self,
        db: Session,
        user_a: str,
        user_b: str,
        *,
        deadline: Deadline | None = None,
    ) -> None:
        """
        Remove both accepted rows between two users.

        A friendship one side has since blocked is stored as one accepted row
        plus the blocker's blocked row; unfriending it deletes the accepted
        row and keeps the block.

        Raises:
            NotFound: the users are not friends in either direction
            InvariantViolation: exactly one direction existed; nothing is deleted
        """
        key = (user_a, user_b)

        def work(session: Session) -> None:
            rows = session.execute(
                select(Edge.owner_id, Edge.status)
                .where(_either_direction(user_a, user_b))
                .with_for_update()
            ).all()
            accepted = [row.owner_id for row in rows if row.status == FriendStatus.ACCEPTED.value]
            blockers = [row.owner_id for row in rows if row.status == FriendStatus.BLOCKED.value]
            if not accepted:
                raise NotFound("Users are not friends", operation="unfriend", key=key)

            expected = 2
            if len(accepted) == 1 and blockers and blockers[0] != accepted[0]:
                expected = 1

            deleted = session.execute(
                delete(Edge)
                .where(
                    _either_direction(user_a, user_b),
                    Edge.status == FriendStatus.ACCEPTED.value,
                )
                .execution_options(synchronize_session=False)
            ).rowcount
            if deleted == expected:
                return
            logger.error(
                f"Friendship {key} had {deleted} accepted row(s), expected {expected}; rolling back"
            )
            raise InvariantViolation(
                "Friendship is stored in only one direction", operation="unfriend", key=key
            )

        self._run(db, "unfriend", key, work, deadline)
        logger.info(f"Friendship removed between {user_a} and {user_b}")

    def block(
        self,
        db: Session,
        blocker_id: str,
        blocked_id: str,
        *,
        deadline: Deadline | None = None,
    ) -> None:
        """
        Upsert (blocker, blocked, blocked). Idempotent.

        The reverse row is left untouched, and an existing friendship is not
        dissolved; callers wanting full disconnection also call ``unfriend``.
        """
        key = (blocker_id, blocked_id)
        if blocker_id == blocked_id:
            raise InvariantViolation("Cannot block yourself", operation="block", key=key)

        def work(session: Session) -> None:
            now = models.utcnow()
            changed = session.execute(
                update(Edge)
                .where(Edge.owner_id == blocker_id, Edge.other_id == blocked_id)
                .values(status=FriendStatus.BLOCKED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount
            if changed:
                return
            try:
                with session.begin_nested():
                    session.execute(
                        insert(Edge).values(
                            {
                                Edge.owner_id: blocker_id,
                                Edge.other_id: blocked_id,
                                Edge.status: FriendStatus.BLOCKED.value,
                                Edge.created_at: now,
                                Edge.updated_at: now,
                            }
                        )
                    )
            except IntegrityError:
                # A concurrent writer created the row first; overwrite it
                changed = session.execute(
                    update(Edge)
                    .where(Edge.owner_id == blocker_id, Edge.other_id == blocked_id)
                    .values(status=FriendStatus.BLOCKED.value, updated_at=now)
                    .execution_options(synchronize_session=False)
                ).rowcount
                if not changed:
                    raise

        self._run(db, "block", key, work, deadline)
        logger.info(f"User {blocker_id} blocked {blocked_id}")

    def unblock(
        self,
        db: Session,
        blocker_id: str,
        blocked_id: str,
        *,
        deadline: Deadline | None = None,
    ) -> bool:
        """
        Lift a block by (blocker, blocked); a no-op when there is none.

        If the blocked user still holds an accepted row towards the blocker,
        the friendship was never dissolved and the blocker's accepted row is
        restored. Otherwise the block row is deleted.
        """
        key = (blocker_id, blocked_id)
        is_block = and_(
            Edge.owner_id == blocker_id,
            Edge.other_id == blocked_id,
            Edge.status == FriendStatus.BLOCKED.value,
        )

        def work(session: Session) -> bool:
            reverse = session.scalar(
                select(Edge.status)
                .where(Edge.owner_id == blocked_id, Edge.other_id == blocker_id)
                .with_for_update()
            )
            if reverse == FriendStatus.ACCEPTED.value:
                changed = session.execute(
                    update(Edge)
                    .where(is_block)
                    .values(status=FriendStatus.ACCEPTED.value, updated_at=models.utcnow())
                    .execution_options(synchronize_session=False)
                ).rowcount
                if changed:
                    logger.info(f"Restored friendship {key} on unblock")
                return bool(changed)

            deleted = session.execute(
                delete(Edge).where(is_block).execution_options(synchronize_session=False)
            ).rowcount
            return bool(deleted)

        removed = self._run(db, "unblock", key, work, deadline)
        if removed:
            logger.info(f"User {blocker_id} unblocked {blocked_id}")
        return removed

    # =========================================================================
    # Reads
    # =========================================================================

    def status(
        self, db: Session, user_a: str, user_b: str, *, deadline: Deadline | None = None
    ) -> FriendStatus:
        """Status of the directed row (user_a, user_b), or NONE."""

        def work(session: Session) -> FriendStatus:
            value = session.scalar(
                select(Edge.status).where(Edge.owner_id == user_a, Edge.other_id == user_b)
            )
            return FriendStatus(value) if value else FriendStatus.NONE

        return self._run(db, "status", (user_a, user_b), work, deadline)

    def are_friends(
        self, db: Session, user_a: str, user_b: str, *, deadline: Deadline | None = None
    ) -> bool:
        return self.status(db, user_a, user_b, deadline=deadline) is FriendStatus.ACCEPTED

    def friend_ids(self, user_id: str):
        """Select of the ids ``user_id`` has an accepted row towards."""
        return select(Edge.other_id).where(
            Edge.owner_id == user_id, Edge.status == FriendStatus.ACCEPTED.value
        )

    def blocked_ids(self, user_id: str):
        """Select of the ids ``user_id`` has blocked."""
        return select(Edge.other_id).where(
            Edge.owner_id == user_id, Edge.status == FriendStatus.BLOCKED.value
        )

    def blocker_ids(self, user_id: str):
        """Select of the ids that have blocked ``user_id``."""
        return select(Edge.owner_id).where(
            Edge.other_id == user_id, Edge.status == FriendStatus.BLOCKED.value
        )

    def mutual_friends(
        self, db: Session, user_a: str, user_b: str, *, deadline: Deadline | None = None
    ) -> list[Connection]:
        """Users in both accepted adjacency sets, ordered by username."""
        mine = aliased(Edge)
        theirs = aliased(Edge)

        def work(session: Session) -> list[Connection]:
            rows = session.execute(
                select(
                    models.User.id,
                    models.User.username,
                    models.User.profile_picture_url,
                    mine.updated_at.label("since"),
                )
                .join(mine, and_(mine.other_id == models.User.id, mine.owner_id == user_a))
                .join(theirs, and_(theirs.other_id == models.User.id, theirs.owner_id == user_b))
                .where(
                    mine.status == FriendStatus.ACCEPTED.value,
                    theirs.status == FriendStatus.ACCEPTED.value,
                )
                .order_by(models.User.username)
            ).all()
            return [_connection(row) for row in rows]

        return self._run(db, "mutual_friends", (user_a, user_b), work, deadline)

    def list_friends(
        self, db: Session, user_id: str, *, deadline: Deadline | None = None
    ) -> list[Connection]:
        """Accepted friends, ordered by username."""
        return self._adjacent(
            db, "list_friends", user_id, FriendStatus.ACCEPTED, outgoing=True,
            order_by_username=True, deadline=deadline,
        )

    def pending_received(
        self, db: Session, user_id: str, *, deadline: Deadline | None = None
    ) -> list[Connection]:
        """Users with a pending request towards ``user_id``, newest first."""
        return self._adjacent(
            db, "pending_received", user_id, FriendStatus.PENDING, outgoing=False,
            deadline=deadline,
        )

    def pending_sent(
        self, db: Session, user_id: str, *, deadline: Deadline | None = None
    ) -> list[Connection]:
        """Users ``user_id`` has a pending request towards, newest first."""
        return self._adjacent(
            db, "pending_sent", user_id, FriendStatus.PENDING, outgoing=True, deadline=deadline
        )

    def blocked_users(
        self, db: Session, user_id: str, *, deadline: Deadline | None = None
    ) -> list[Connection]:
        """Users blocked by ``user_id``, newest first."""
        return self._adjacent(
            db, "blocked_users", user_id, FriendStatus.BLOCKED, outgoing=True, deadline=deadline
        )

    def friend_count(
        self, db: Session, user_id: str, *, deadline: Deadline | None = None
    ) -> int:
        def work(session: Session) -> int:
            return (
                session.scalar(
                    select(func.count()).select_from(Edge).where(
                        Edge.owner_id == user_id, Edge.status == FriendStatus.ACCEPTED.value
                    )
                )
                or 0
            )

        return self._run(db, "friend_count", user_id, work, deadline)

    # =========================================================================
    # Private helper methods
    # =========================================================================

    def _adjacent(
        self,
        db: Session,
        operation: str,
        user_id: str,
        status: FriendStatus,
        *,
        outgoing: bool,
        order_by_username: bool = False,
        deadline: Deadline | None = None,
    ) -> list[Connection]:
        if outgoing:
            mine, theirs = Edge.owner_id, Edge.other_id
        else:
            mine, theirs = Edge.other_id, Edge.owner_id
        since = Edge.updated_at if status is FriendStatus.ACCEPTED else Edge.created_at

        def work(session: Session) -> list[Connection]:
            query = (
                select(
                    models.User.id,
                    models.User.username,
                    models.User.profile_picture_url,
                    since.label("since"),
                )
                .join(Edge, theirs == models.User.id)
                .where(mine == user_id, Edge.status == status.value)
            )
            if order_by_username:
                query = query.order_by(models.User.username)
            else:
                query = query.order_by(since.desc(), models.User.id.desc())
            return [_connection(row) for row in session.execute(query).all()]

        return self._run(db, operation, user_id, work, deadline)

    @staticmethod
    def _already_friends(session: Session, user_a: str, user_b: str) -> bool:
        accepted = session.scalar(
            select(func.count())
            .select_from(Edge)
            .where(
                _either_direction(user_a, user_b),
                Edge.status == FriendStatus.ACCEPTED.value,
            )
        )
        return accepted == 2

    @staticmethod
    def _recover_reverse_edge(
        session: Session, owner_id: str, other_id: str, now: datetime
    ) -> None:
        """
        The reverse row already exists while accepting.

        An accepted row means a concurrent accept got there first; a stale
        pending row is promoted. A block is not overridden.
        """
        key = (owner_id, other_id)
        status = session.scalar(
            select(Edge.status)
            .where(Edge.owner_id == owner_id, Edge.other_id == other_id)
            .with_for_update()
        )
        if status == FriendStatus.ACCEPTED.value:
            logger.info(f"Reverse edge {key} already accepted; treating accept as satisfied")
            return
        if status == FriendStatus.PENDING.value:
            session.execute(
                update(Edge)
                .where(Edge.owner_id == owner_id, Edge.other_id == other_id)
                .values(status=FriendStatus.ACCEPTED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            logger.info(f"Promoted stale pending edge {key} while accepting")
            return
        raise Conflict(
            "Cannot accept a request from a user you have blocked",
            operation="accept_request",
            key=key,
        )


def _either_direction(user_a: str, user_b: str):
    return or_(
        and_(Edge.owner_id == user_a, Edge.other_id == user_b),
        and_(Edge.owner_id == user_b, Edge.other_id == user_a),
    )


def _conflict_message(outgoing: bool, status: str) -> str:
    if status == FriendStatus.ACCEPTED.value:
        return "Already friends"
    if status == FriendStatus.BLOCKED.value:
        return "Friend request not allowed"
    if outgoing:
        return "Friend request already sent"
    return "This user has already sent you a friend request"


def _connection(row) -> Connection:
    return Connection(
        user_id=row.id,
        username=row.username,
        profile_picture_url=row.profile_picture_url,
        since=row.since,
    )
