"""Hold expiry scheduler tests."""
from courtbook.services.scheduler import HoldExpiryScheduler


async def test_start_and_stop():
    scheduler = HoldExpiryScheduler(interval_minutes=5)

    await scheduler.start()
    assert scheduler.running
    job = scheduler.scheduler.get_job("hold_expiry_job")
    assert job is not None
    assert job.trigger.interval.total_seconds() == 300

    # Starting twice is a no-op
    await scheduler.start()
    assert len(scheduler.scheduler.get_jobs()) == 1

    await scheduler.stop()
    assert not scheduler.running


async def test_stop_when_not_running():
    scheduler = HoldExpiryScheduler()
    await scheduler.stop()
    assert not scheduler.running


async def test_job_failures_are_logged_not_raised(caplog):
    """The test database has no tables, so the job fails inside storage."""
    scheduler = HoldExpiryScheduler()

    await scheduler._expire_holds()

    assert "Error in hold expiry check" in caplog.text
