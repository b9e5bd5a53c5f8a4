import pytest

from api.middleware.error_handler import InvalidTransitionError
from api.models import Application, StatusHistoryEntry
from api.services.transitions import ApplicationStatus as S


def _application(status=S.SUBMITTED) -> Application:
    return Application(
        reference="APP-1",
        candidate_id="cand-1",
        job_posting_id=1,
        status=status,
        is_shortlisted=False,
    )


def test_transition_appends_history_and_stamps_actor():
    application = _application()

    previous = application.transition_to(S.UNDER_REVIEW, "SYSTEM", "review", system=True)

    assert previous == S.SUBMITTED
    assert application.status == S.UNDER_REVIEW
    assert application.last_status_changed_by == "SYSTEM"
    assert application.last_status_changed_at is not None
    [entry] = application.status_history
    assert entry.from_status == S.SUBMITTED
    assert entry.to_status == S.UNDER_REVIEW
    assert entry.is_system_change is True
    assert entry.is_automatic_decision is False


def test_self_transition_is_a_silent_noop():
    application = _application(S.UNDER_REVIEW)

    assert application.transition_to(S.UNDER_REVIEW, "recruiter") is None
    assert application.status_history == []
    assert application.last_status_changed_by is None


def test_illegal_transition_leaves_aggregate_untouched():
    application = _application()

    with pytest.raises(InvalidTransitionError):
        application.transition_to(S.SHORTLISTED, "recruiter")

    assert application.status == S.SUBMITTED
    assert application.status_history == []


def test_shortlist_and_reject_set_processed_at_once():
    application = _application(S.UNDER_REVIEW)

    application.transition_to(S.SHORTLISTED, "AI", automatic=True)
    first_processed = application.processed_at
    assert application.is_shortlisted is True
    assert first_processed is not None

    application.transition_to(S.REJECTED, "recruiter")
    assert application.is_shortlisted is False
    assert application.processed_at == first_processed


def test_revert_review_only_from_under_review():
    application = _application(S.UNDER_REVIEW)

    assert application.revert_review("SYSTEM", "AI evaluation failed: timeout") is True
    assert application.status == S.SUBMITTED
    entry = application.status_history[-1]
    assert (entry.from_status, entry.to_status) == (S.UNDER_REVIEW, S.SUBMITTED)
    assert entry.is_system_change is True

    shortlisted = _application(S.SHORTLISTED)
    assert shortlisted.revert_review("SYSTEM", "late failure") is False
    assert shortlisted.status == S.SHORTLISTED
    assert shortlisted.status_history == []


def test_history_is_append_only(session_factory, make_application):
    created = make_application(S.UNDER_REVIEW)

    with session_factory() as session:
        application = session.get(Application, created.id)
        application.transition_to(S.SHORTLISTED, "AI", "auto", system=True, automatic=True)
        application.transition_to(S.INTERVIEW_REQUESTED, "recruiter", "interview")
        session.commit()

    with session_factory() as session:
        entries = (
            session.query(StatusHistoryEntry)
            .filter(StatusHistoryEntry.application_id == created.id)
            .order_by(StatusHistoryEntry.id)
            .all()
        )
        assert [(e.from_status, e.to_status) for e in entries] == [
            (None, S.UNDER_REVIEW),
            (S.UNDER_REVIEW, S.SHORTLISTED),
            (S.SHORTLISTED, S.INTERVIEW_REQUESTED),
        ]
        assert entries[1].is_automatic_decision is True
        assert entries[2].changed_by == "recruiter"
