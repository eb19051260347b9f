# tests/test_sinks.py
from unittest import mock

from django.db import DatabaseError
from django.dispatch import Signal

from audit.models import AuditLog
from audit.services import ActorContext, record_audit
from common.enums import AuditAction, NotificationKind, PriorityLevel
from core.unit_of_work import UnitOfWork, unit_of_work
from finance.models import Account
from notifications.models import Notification
from notifications.services import dispatch_notification


def test_dispatch_notification_links_the_related_object(user, wallet):
    notification = dispatch_notification(
        user, NotificationKind.BILL_PAID, "Paid", priority=PriorityLevel.LOW, related=wallet,
    )
    assert notification.related == wallet
    assert notification.title == 'Bill Paid'
    assert notification.is_read is False


def test_notification_failure_is_swallowed(user):
    with mock.patch.object(Notification.objects, 'create', side_effect=DatabaseError("down")):
        assert dispatch_notification(user, NotificationKind.BILL_PAID, "Paid") is None
    assert Notification.objects.count() == 0


def test_audit_records_actor_context(user):
    actor = ActorContext(label='api', ip_address='10.0.0.1', user_agent='pytest')
    log = record_audit(user, AuditAction.ACCOUNT_CREATE, 'account', 7, {'type': 'cash'}, actor)
    assert log.resource_id == '7'
    assert log.ip_address == '10.0.0.1'
    assert log.actor == 'api'


def test_audit_failure_is_swallowed(user):
    with mock.patch.object(AuditLog.objects, 'create', side_effect=DatabaseError("down")):
        assert record_audit(user, AuditAction.ACCOUNT_CREATE, 'account', 1) is None


def test_unit_of_work_reuses_callers_handle():
    work = UnitOfWork()
    assert unit_of_work(work) is work
    assert isinstance(unit_of_work(), UnitOfWork)


def test_inner_failure_rolls_back_only_the_savepoint(user, wallet):
    work = UnitOfWork()
    with work:
        Account.objects.filter(pk=wallet.pk).update(name='Outer')
        try:
            with work:
                Account.objects.filter(pk=wallet.pk).update(name='Inner')
                raise RuntimeError("abort inner")
        except RuntimeError:
            pass
        assert work.is_open
    wallet.refresh_from_db()
    assert wallet.name == 'Outer'


def test_emit_waits_for_commit(user, django_capture_on_commit_callbacks):
    ping = Signal()
    received = []
    ping.connect(lambda sender, **payload: received.append(payload), weak=False)

    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        with UnitOfWork() as work:
            work.emit(ping, sender=None, value=1)
            assert received == []
    assert len(callbacks) == 1
    assert received == [{'signal': ping, 'value': 1}]
