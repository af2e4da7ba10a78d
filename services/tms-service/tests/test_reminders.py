from datetime import time, timedelta
import pytest

from app import models
from app.services.reminders import send_daily_reminders
from conftest import TODAY, FakeNotifier

TOMORROW = TODAY + timedelta(days=1)
YESTERDAY = TODAY - timedelta(days=1)


@pytest.mark.asyncio
async def test_daily_reminders(db_session, make_project, make_task, admin_user, test_user):
    await make_project(name="Due Soon", due_date=TOMORROW)
    await make_project(name="Late", start_date=TODAY - timedelta(days=10), due_date=YESTERDAY)
    await make_project(name="Shipped", status="completed", due_date=TOMORROW)

    ongoing = await make_project(name="Ongoing")
    await make_task(ongoing, due_date=TOMORROW)
    await make_task(ongoing, start_date=TODAY - timedelta(days=3), due_date=YESTERDAY)
    await make_task(ongoing, status="completed", due_date=TOMORROW)

    db_session.add(models.Event(title="Town Hall", date=TOMORROW, start_time=time(9, 0), end_time=time(10, 0)))
    await db_session.commit()

    notifier = FakeNotifier()
    sent = await send_daily_reminders(db_session, notifier, today=TODAY)

    assert sent == 5
    assert notifier.subjects() == [
        "Project Due Reminder",
        "Overdue Project Alert",
        "Task Reminder",
        "Overdue Task Alert",
        "Event Reminder",
    ]
    assert notifier.sent[0].to == [test_user.email]
    assert sorted(notifier.sent[-1].to) == sorted([admin_user.email, test_user.email])


@pytest.mark.asyncio
async def test_no_reminders_on_quiet_day(db_session, make_project):
    await make_project()

    notifier = FakeNotifier()
    assert await send_daily_reminders(db_session, notifier, today=TODAY) == 0
    assert notifier.sent == []
