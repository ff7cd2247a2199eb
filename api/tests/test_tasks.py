"""Test the notification retention sweep run by Celery beat."""

from datetime import timedelta

from sqlalchemy import update

from brewd import models
from brewd.tasks import celery_app, purge_expired_notifications


def test_beat_schedules_purge():
    schedule = celery_app.conf.beat_schedule["purge-read-notifications"]
    assert schedule["task"] == "brewd.tasks.purge_read_notifications"
    assert schedule["schedule"] > 0


def test_purge_respects_retention(db, settings, notifications, make_user):
    me, a, b, c = make_user(), make_user(), make_user(), make_user()
    expired = notifications.notify(db, me.id, a.id, "follow").notification
    unread_old = notifications.notify(db, me.id, b.id, "follow").notification
    recent = notifications.notify(db, me.id, c.id, "follow").notification
    db.execute(
        update(models.Notification)
        .where(models.Notification.id.in_([expired.id, unread_old.id]))
        .values(created_at=models.utcnow() - timedelta(days=settings.notification_retention_days + 1))
    )
    db.commit()
    notifications.mark_read(db, expired.id, me.id)
    notifications.mark_read(db, recent.id, me.id)

    result = purge_expired_notifications(db, settings)

    assert result["status"] == "success"
    assert result["deleted"] == 1
    remaining = {n.id for n in notifications.list_notifications(db, me.id)}
    assert remaining == {unread_old.id, recent.id}
