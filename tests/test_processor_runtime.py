import json
from datetime import timedelta

from api.models import AISettings, Job
from api.models.applications import utcnow
from api.services.ai_settings_service import AISettingsService
from api.services.transitions import ApplicationStatus as S
from processor.health_server import HealthServer
from processor.heartbeat import HeartbeatWriter
from processor.processors.base import BaseProcessor
from processor.queue_manager import QueueManager
from processor.scheduler import Scheduler
from processor.worker import Worker


class RecordingProcessor(BaseProcessor):
    job_type = "record"
    seen = []

    async def process(self, application_id=None, payload=None):
        if (payload or {}).get("explode"):
            raise RuntimeError("processor blew up")
        if (payload or {}).get("invalid"):
            raise ValueError("application is gone")
        RecordingProcessor.seen.append((application_id, payload))


async def test_worker_completes_successful_jobs(session_factory):
    RecordingProcessor.seen = []
    with session_factory() as session:
        job_id = QueueManager(session).enqueue("record", payload={"n": 1})
        job = QueueManager(session).claim_next()

    worker = Worker(session_factory)
    worker.register_processor(RecordingProcessor)
    await worker.process_job(job)

    assert RecordingProcessor.seen == [(None, {"n": 1})]
    with session_factory() as session:
        assert session.get(Job, job_id).status == "completed"


async def test_worker_fails_jobs_for_retry(session_factory):
    with session_factory() as session:
        job_id = QueueManager(session).enqueue("record", payload={"explode": True})
        job = QueueManager(session).claim_next()

    worker = Worker(session_factory, processors={"record": RecordingProcessor})
    await worker.process_job(job)

    with session_factory() as session:
        stored = session.get(Job, job_id)
        assert stored.status == "pending"
        assert stored.last_error == "processor blew up"


async def test_worker_rejects_unregistered_job_type(session_factory):
    with session_factory() as session:
        job_id = QueueManager(session).enqueue("unknown")
        job = QueueManager(session).claim_next()

    await Worker(session_factory).process_job(job)

    with session_factory() as session:
        assert "No processor registered" in session.get(Job, job_id).last_error


async def test_worker_dead_letters_business_rule_failures(session_factory):
    with session_factory() as session:
        job_id = QueueManager(session).enqueue("record", payload={"invalid": True})
        job = QueueManager(session).claim_next()

    await Worker(session_factory, processors={"record": RecordingProcessor}).process_job(job)

    with session_factory() as session:
        stored = session.get(Job, job_id)
        assert stored.status == "dead"
        assert stored.attempts == 1


async def test_worker_hands_payload_to_processor(session_factory):
    RecordingProcessor.seen = []
    with session_factory() as session:
        QueueManager(session).enqueue("record", application_id=None, payload={"force": True})
        job = QueueManager(session).claim_next()

    await Worker(session_factory, processors={"record": RecordingProcessor}).process_job(job)

    assert RecordingProcessor.seen == [(None, {"force": True})]


def test_worker_maintenance_recovers_stuck_jobs(session_factory):
    with session_factory() as session:
        job_id = QueueManager(session).enqueue("record")
        QueueManager(session).claim_next()
        session.get(Job, job_id).started_at = utcnow() - timedelta(hours=2)
        session.commit()

    result = Worker(session_factory).run_maintenance()

    assert result["recovered"] == 1
    with session_factory() as session:
        assert session.get(Job, job_id).status == "pending"


def test_scheduler_runs_calibration_when_due(session_factory, make_application):
    service = AISettingsService(session_factory)
    service.create_settings("Engineering", 80, 40, is_self_calibrating=True)
    make_application(S.SHORTLISTED, ai_processed=True, ai_score=95)

    scheduler = Scheduler(session_factory, ai_settings=service)
    assert scheduler.calibration_due() is True

    summary = scheduler.run_calibration()

    assert summary["calibrated"] == ["Engineering"]
    assert scheduler.calibration_due() is False
    assert scheduler.get_status()["last_summary"] == summary
    with session_factory() as session:
        assert session.query(AISettings).one().auto_accept_threshold == 90


def test_scheduler_reads_last_calibration_from_database(session_factory):
    AISettingsService(session_factory).create_settings("Engineering", 80, 40, is_self_calibrating=True)

    scheduler = Scheduler(session_factory)
    scheduler.last_calibration = scheduler._last_recorded_calibration()

    assert scheduler.last_calibration is not None
    assert scheduler.calibration_due() is False


def test_scheduler_seeds_from_oldest_self_calibrating_department(session_factory):
    service = AISettingsService(session_factory)
    stale = service.create_settings("Engineering", 80, 40, is_self_calibrating=True)
    service.create_settings("Sales", 80, 40)
    with session_factory() as session:
        session.get(AISettings, stale.id).last_calibration_date = utcnow() - timedelta(days=3)
        session.commit()

    scheduler = Scheduler(session_factory)
    scheduler.last_calibration = scheduler._last_recorded_calibration()

    assert scheduler.calibration_due() is True


def test_heartbeat_writes_status_file(tmp_path):
    path = tmp_path / "heartbeat.json"
    writer = HeartbeatWriter(status_callback=lambda: {"worker": {"running": True}}, file_path=str(path))

    writer.write()

    data = json.loads(path.read_text())
    assert data["status"] == "running"
    assert data["worker"] == {"running": True}


def test_heartbeat_marks_failed_callback_degraded(tmp_path):
    def broken():
        raise RuntimeError("db down")

    path = tmp_path / "heartbeat.json"
    data = HeartbeatWriter(status_callback=broken, file_path=str(path)).write()

    assert data["status"] == "degraded"


async def test_health_reports_stopped_components():
    healthy = HealthServer(status_callback=lambda: {"worker": {"running": True}}, port=0)
    response = await healthy.health_handler(None)
    assert response.status == 200
    assert json.loads(response.text)["status"] == "ok"

    unhealthy = HealthServer(status_callback=lambda: {"worker": {"running": False}}, port=0)
    response = await unhealthy.health_handler(None)
    assert response.status == 503
    assert json.loads(response.text)["stopped"] == ["worker"]
