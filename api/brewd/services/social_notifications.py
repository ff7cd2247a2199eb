"""
Notification Dispatcher.

Handles creation, deduplication, retrieval and cleanup of notifications
raised by friend requests and by content events (likes, comments, tags).
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, joinedload

from .. import models
from ..errors import Forbidden, NotFound, SocialError
from ..settings import SocialSettings
from ..transactions import Deadline, run_in_transaction

logger = logging.getLogger(__name__)


class NotifyOutcome(str, enum.Enum):
    CREATED = "created"
    DUPLICATE_SUPPRESSED = "duplicate_suppressed"
    SELF_SUPPRESSED = "self_suppressed"


@dataclass(frozen=True)
class NotifyResult:
    outcome: NotifyOutcome
    notification: models.Notification | None = None

    @property
    def created(self) -> bool:
        return self.outcome is NotifyOutcome.CREATED


class NotificationDispatcher:
    """Sole writer of the notification table."""

    def __init__(self, settings: SocialSettings) -> None:
        self.settings = settings

    def _deadline(self, deadline: Deadline | None) -> Deadline:
        return deadline or Deadline.after(self.settings.request_deadline_seconds)

    def notify(
        self,
        db: Session,
        recipient_id: str,
        actor_id: str,
        notification_type: str,
        reference_id: str | None = None,
        reference_type: str | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> NotifyResult:
        """
        Create a notification unless an identical one is already in the dedup window.

        Args:
            db: Database session
            recipient_id: User to notify
            actor_id: User who triggered the event
            notification_type: 'like', 'comment', 'friend_request', 'tag' or 'follow'
            reference_id: Id of the post, comment or user the event is about
            reference_type: 'post', 'comment' or 'friendship'

        Returns:
            NotifyResult; a suppressed duplicate is an outcome, not an error
        """
        if notification_type not in models.NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type: {notification_type}")
        if reference_type is not None and reference_type not in models.REFERENCE_TYPES:
            raise ValueError(f"Unknown reference type: {reference_type}")

        # Don't notify users about their own actions
        if actor_id == recipient_id:
            logger.debug(f"Skipping self-notification for user {recipient_id}")
            return NotifyResult(NotifyOutcome.SELF_SUPPRESSED)

        key = (recipient_id, actor_id, notification_type, reference_id)

        def work(session: Session) -> NotifyResult:
            since = models.utcnow() - timedelta(seconds=self.settings.dedup_window_seconds)
            existing = session.execute(
                select(models.Notification.id)
                .where(
                    models.Notification.recipient_id == recipient_id,
                    models.Notification.actor_id == actor_id,
                    models.Notification.notification_type == notification_type,
                    _reference_matches(reference_id),
                    models.Notification.created_at > since,
                )
                .limit(1)
            ).first()
            if existing is not None:
                logger.debug(f"Suppressed duplicate notification {key}")
                return NotifyResult(NotifyOutcome.DUPLICATE_SUPPRESSED)

            notification = models.Notification(
                recipient_id=recipient_id,
                actor_id=actor_id,
                notification_type=notification_type,
                reference_id=reference_id,
                reference_type=reference_type,
                is_read=False,
            )
            session.add(notification)
            session.flush()
            return NotifyResult(NotifyOutcome.CREATED, notification)

        result = run_in_transaction(
            db,
            "notify",
            key,
            work,
            deadline=self._deadline(deadline),
            retries=self.settings.transaction_retries,
        )
        if result.created:
            logger.info(
                f"Created {notification_type} notification {result.notification.id} for user {recipient_id}"
            )
        return result

    def notify_after_commit(self, db: Session, **kwargs) -> NotifyResult | None:
        """
        ``notify`` for an event whose own write has already committed.

        A store failure here must not turn the committed event into an error
        for the caller, so it is logged and None is returned.
        """
        try:
            return self.notify(db, **kwargs)
        except SocialError as e:
            logger.warning(
                f"Failed to create {kwargs.get('notification_type')} notification "
                f"for user {kwargs.get('recipient_id')}: {e}",
                exc_info=True,
            )
            return None

    def list_notifications(
        self,
        db: Session,
        recipient_id: str,
        limit: int = 50,
        offset: int = 0,
        notification_type: str | None = None,
        unread_only: bool = False,
        *,
        deadline: Deadline | None = None,
    ) -> list[models.Notification]:
        """List notifications newest first, with offset pagination."""

        def work(session: Session) -> list[models.Notification]:
            query = (
                select(models.Notification)
                .options(joinedload(models.Notification.actor))
                .where(models.Notification.recipient_id == recipient_id)
            )
            if notification_type:
                query = query.where(models.Notification.notification_type == notification_type)
            if unread_only:
                query = query.where(models.Notification.is_read == False)  # noqa: E712
            query = query.order_by(
                models.Notification.created_at.desc(), models.Notification.id.desc()
            )
            return list(session.scalars(query.limit(limit).offset(offset)).all())

        return run_in_transaction(
            db, "list_notifications", recipient_id, work, deadline=self._deadline(deadline)
        )

    def unread_count(
        self, db: Session, recipient_id: str, *, deadline: Deadline | None = None
    ) -> int:
        """Count unread notifications; served by the (recipient, is_read) index."""

        def work(session: Session) -> int:
            return (
                session.scalar(
                    select(func.count(models.Notification.id)).where(
                        models.Notification.recipient_id == recipient_id,
                        models.Notification.is_read == False,  # noqa: E712
                    )
                )
                or 0
            )

        return run_in_transaction(
            db, "unread_count", recipient_id, work, deadline=self._deadline(deadline)
        )

    def mark_read(
        self,
        db: Session,
        notification_id: str,
        recipient_id: str,
        *,
        deadline: Deadline | None = None,
    ) -> bool:
        """
        Mark one notification as read.

        Returns:
            True if the row flipped, False if it was already read

        Raises:
            NotFound: no notification with that id
            Forbidden: the notification belongs to another recipient
        """

        def work(session: Session) -> bool:
            result = session.execute(
                update(models.Notification)
                .where(
                    models.Notification.id == notification_id,
                    models.Notification.recipient_id == recipient_id,
                    models.Notification.is_read == False,  # noqa: E712
                )
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                return True
            self._check_ownership(session, "mark_read", notification_id, recipient_id)
            return False

        return run_in_transaction(
            db,
            "mark_read",
            notification_id,
            work,
            deadline=self._deadline(deadline),
            retries=self.settings.transaction_retries,
        )

    def mark_all_read(
        self, db: Session, recipient_id: str, *, deadline: Deadline | None = None
    ) -> int:
        """Mark every unread notification of a recipient as read; returns rows flipped."""

        def work(session: Session) -> int:
            result = session.execute(
                update(models.Notification)
                .where(
                    models.Notification.recipient_id == recipient_id,
                    models.Notification.is_read == False,  # noqa: E712
                )
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        return run_in_transaction(
            db,
            "mark_all_read",
            recipient_id,
            work,
            deadline=self._deadline(deadline),
            retries=self.settings.transaction_retries,
        )

    def delete_notification(
        self,
        db: Session,
        notification_id: str,
        recipient_id: str,
        *,
        deadline: Deadline | None = None,
    ) -> None:
        """Delete one notification owned by ``recipient_id``."""

        def work(session: Session) -> None:
            result = session.execute(
                delete(models.Notification)
                .where(
                    models.Notification.id == notification_id,
                    models.Notification.recipient_id == recipient_id,
                )
                .execution_options(synchronize_session=False)
            )
            if not result.rowcount:
                self._check_ownership(
                    session, "delete_notification", notification_id, recipient_id
                )

        run_in_transaction(
            db,
            "delete_notification",
            notification_id,
            work,
            deadline=self._deadline(deadline),
        )

    def purge(
        self,
        db: Session,
        recipient_id: str,
        older_than: datetime,
        *,
        deadline: Deadline | None = None,
    ) -> int:
        """
        Delete a recipient's read notifications created before ``older_than``.

        Only rows that are already read and aged out can match, so this is safe
        to run alongside live traffic.
        """

        def work(session: Session) -> int:
            result = session.execute(
                delete(models.Notification)
                .where(
                    models.Notification.recipient_id == recipient_id,
                    models.Notification.is_read == True,  # noqa: E712
                    models.Notification.created_at < older_than,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        deleted = run_in_transaction(
            db, "purge", recipient_id, work, deadline=self._deadline(deadline)
        )
        if deleted:
            logger.info(f"Purged {deleted} read notifications for user {recipient_id}")
        return deleted

    def purge_all(
        self, db: Session, older_than: datetime, *, deadline: Deadline | None = None
    ) -> int:
        """Run ``purge`` for every recipient that has read, aged notifications."""
        recipients = run_in_transaction(
            db,
            "purge_all",
            older_than.isoformat(),
            lambda session: list(
                session.scalars(
                    select(models.Notification.recipient_id)
                    .where(
                        models.Notification.is_read == True,  # noqa: E712
                        models.Notification.created_at < older_than,
                    )
                    .distinct()
                ).all()
            ),
            deadline=deadline,
        )
        return sum(
            self.purge(db, recipient_id, older_than, deadline=deadline)
            for recipient_id in recipients
        )

    # =========================================================================
    # Private helper methods
    # =========================================================================

    @staticmethod
    def _check_ownership(
        session: Session, operation: str, notification_id: str, recipient_id: str
    ) -> None:
        owner = session.scalar(
            select(models.Notification.recipient_id).where(
                models.Notification.id == notification_id
            )
        )
        if owner is None:
            raise NotFound("Notification not found", operation=operation, key=notification_id)
        if owner != recipient_id:
            raise Forbidden(
                "Notification belongs to another user",
                operation=operation,
                key=notification_id,
            )


def _reference_matches(reference_id: str | None):
    if reference_id is None:
        return models.Notification.reference_id.is_(None)
    return models.Notification.reference_id == reference_id
