import pytest

from api.middleware.error_handler import DownstreamUnavailableError
from api.models import AISettings, Application, Evaluation, StatusHistoryEntry
from api.services.transitions import ApplicationStatus as S
from processor.processors.evaluate import EvaluateProcessor
from processor.queue_manager import QueueManager
from conftest import complete_profile, unavailable


@pytest.fixture
def processor_factory(session_factory, profiles, postings, scoring, evaluation_service):
    sessions = []

    def _make():
        db = session_factory()
        sessions.append(db)
        return EvaluateProcessor(
            db,
            QueueManager(db),
            session_factory,
            profiles=profiles,
            postings=postings,
            scoring=scoring,
            evaluations=evaluation_service,
        )

    yield _make
    for db in sessions:
        db.close()


@pytest.fixture
def seeded(make_application, profiles, postings):
    """A submitted application whose candidate and posting exist."""
    application = make_application(S.SUBMITTED, candidate_id="cand-42")
    profiles.add(complete_profile("cand-42"))
    postings.add(application.job_posting_id)
    return application


def _load(session_factory, application_id):
    with session_factory() as session:
        return session.get(Application, application_id)


def _transitions(session_factory, application_id):
    with session_factory() as session:
        return [
            (e.from_status, e.to_status)
            for e in session.query(StatusHistoryEntry)
            .filter(StatusHistoryEntry.application_id == application_id)
            .order_by(StatusHistoryEntry.id)
            .all()[1:]
        ]


async def test_scores_and_auto_accepts(processor_factory, seeded, scoring, session_factory):
    scoring.score_value = 92

    await processor_factory().process(application_id=seeded.id)

    application = _load(session_factory, seeded.id)
    assert application.status == S.SHORTLISTED
    assert application.auto_decision is True
    assert application.ai_score == 92
    assert _transitions(session_factory, seeded.id) == [
        (S.SUBMITTED, S.UNDER_REVIEW),
        (S.UNDER_REVIEW, S.SHORTLISTED),
    ]


async def test_uses_department_thresholds(processor_factory, seeded, scoring, session_factory):
    with session_factory() as session:
        session.add(
            AISettings(
                department="Engineering",
                auto_accept_threshold=70,
                auto_reject_threshold=30,
                is_active=True,
                is_auto_accept_enabled=True,
                is_auto_reject_enabled=True,
                is_self_calibrating=False,
            )
        )
        session.commit()
    scoring.score_value = 72

    await processor_factory().process(application_id=seeded.id)

    assert _load(session_factory, seeded.id).status == S.SHORTLISTED


async def test_middle_score_stays_under_review(processor_factory, seeded, scoring, session_factory):
    scoring.score_value = 60

    await processor_factory().process(application_id=seeded.id)

    application = _load(session_factory, seeded.id)
    assert application.status == S.UNDER_REVIEW
    assert application.auto_decision is False
    assert application.ai_processed is True


async def test_lookup_outage_reverts_and_reraises(processor_factory, seeded, profiles, session_factory):
    profiles.error = unavailable()

    with pytest.raises(DownstreamUnavailableError):
        await processor_factory().process(application_id=seeded.id)

    application = _load(session_factory, seeded.id)
    assert application.status == S.SUBMITTED
    assert application.ai_processed is False
    assert _transitions(session_factory, seeded.id) == [
        (S.SUBMITTED, S.UNDER_REVIEW),
        (S.UNDER_REVIEW, S.SUBMITTED),
    ]


async def test_scoring_timeout_reverts(processor_factory, seeded, scoring, session_factory):
    scoring.error = DownstreamUnavailableError("ai-scoring", "request timed out")

    with pytest.raises(DownstreamUnavailableError):
        await processor_factory().process(application_id=seeded.id)

    assert _load(session_factory, seeded.id).status == S.SUBMITTED
    with session_factory() as session:
        assert session.query(Evaluation).count() == 0


async def test_already_processed_is_skipped_unless_forced(
    processor_factory, make_application, profiles, postings, scoring, session_factory
):
    application = make_application(S.UNDER_REVIEW, candidate_id="cand-42", ai_processed=True, ai_score=50)
    profiles.add(complete_profile("cand-42"))
    postings.add(application.job_posting_id)
    scoring.score_value = 95

    await processor_factory().process(application_id=application.id)
    assert scoring.calls == 0

    await processor_factory().process(application_id=application.id, payload={"force": True})
    assert scoring.calls == 1
    assert _load(session_factory, application.id).status == S.SHORTLISTED


async def test_missing_resume_is_skipped(processor_factory, make_application, scoring, session_factory):
    application = make_application(S.SUBMITTED, resume_document_id=None)

    await processor_factory().process(application_id=application.id)

    assert scoring.calls == 0
    assert _load(session_factory, application.id).status == S.SUBMITTED


async def test_unknown_application(processor_factory):
    with pytest.raises(ValueError):
        await processor_factory().process(application_id=9999)


async def test_failed_forced_reevaluation_keeps_deferred_status(
    processor_factory, make_application, profiles, postings, scoring, session_factory
):
    application = make_application(S.UNDER_REVIEW, candidate_id="cand-42", ai_processed=True, ai_score=60)
    profiles.add(complete_profile("cand-42"))
    postings.add(application.job_posting_id)
    scoring.error = unavailable("ai-scoring")

    with pytest.raises(DownstreamUnavailableError):
        await processor_factory().process(application_id=application.id, payload={"force": True})

    stored = _load(session_factory, application.id)
    assert stored.status == S.UNDER_REVIEW
    assert stored.ai_processed is True
    assert _transitions(session_factory, application.id) == []


async def test_failure_does_not_undo_recruiter_review(
    processor_factory, make_application, profiles, postings, scoring, session_factory
):
    application = make_application(S.UNDER_REVIEW, candidate_id="cand-42")
    profiles.add(complete_profile("cand-42"))
    postings.add(application.job_posting_id)
    scoring.error = unavailable("ai-scoring")

    with pytest.raises(DownstreamUnavailableError):
        await processor_factory().process(application_id=application.id)

    assert _load(session_factory, application.id).status == S.UNDER_REVIEW
    assert _transitions(session_factory, application.id) == []
