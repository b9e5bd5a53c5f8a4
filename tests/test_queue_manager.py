from datetime import timedelta

from api.models import Job
from api.models.applications import utcnow
from processor.queue_manager import QueueManager


def test_claims_highest_priority_first(db):
    queue = QueueManager(db)
    low = queue.enqueue("evaluate_application", application_id=None, priority=0)
    high = queue.enqueue("evaluate_application", application_id=None, priority=5)

    assert queue.claim_next()["id"] == high
    assert queue.claim_next()["id"] == low
    assert queue.claim_next() is None


def test_future_jobs_are_not_claimed(db):
    queue = QueueManager(db)
    queue.enqueue("evaluate_application", scheduled_for=utcnow() + timedelta(minutes=5))

    assert queue.claim_next() is None


def test_claim_marks_running_and_counts_attempt(db):
    queue = QueueManager(db)
    job_id = queue.enqueue("evaluate_application", payload={"force": True})

    claimed = queue.claim_next()

    assert claimed["payload"] == {"force": True}
    assert claimed["attempts"] == 1
    job = db.get(Job, job_id)
    assert job.status == "running"
    assert job.started_at is not None


def test_fail_backs_off_then_dead_letters(db):
    queue = QueueManager(db)
    queue.retry_base_delay = 30
    job_id = queue.enqueue("evaluate_application")

    queue.claim_next()
    before = utcnow()
    queue.fail(job_id, "candidate-service unavailable")
    job = db.get(Job, job_id)
    assert job.status == "pending"
    assert job.scheduled_for >= before + timedelta(seconds=29)
    assert job.last_error == "candidate-service unavailable"

    for _ in range(2):
        job.scheduled_for = utcnow()
        db.commit()
        queue.claim_next()
        queue.fail(job_id, "still down")

    job = db.get(Job, job_id)
    assert job.attempts == 3
    assert job.status == "dead"
    assert queue.get_status()["dead"] == 1


def test_retry_dead_job(db):
    queue = QueueManager(db)
    queue.max_attempts = 1
    job_id = queue.enqueue("evaluate_application")
    queue.claim_next()
    queue.fail(job_id, "boom")

    assert queue.retry_dead_job(job_id) is True
    job = db.get(Job, job_id)
    assert job.status == "pending"
    assert job.attempts == 0
    assert queue.retry_dead_job(job_id) is False


def test_recover_stuck_jobs(db):
    queue = QueueManager(db)
    job_id = queue.enqueue("evaluate_application")
    queue.claim_next()
    job = db.get(Job, job_id)
    job.started_at = utcnow() - timedelta(hours=2)
    db.commit()

    assert queue.recover_stuck_jobs(stuck_threshold_minutes=30) == 1
    db.expire_all()
    assert db.get(Job, job_id).status == "pending"
