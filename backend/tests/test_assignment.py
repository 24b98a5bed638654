import threading
from datetime import datetime, timedelta

import fakeredis
import pytest
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker

from wandernest import database, models
from wandernest.crud import crud_tourist_request
from wandernest.models import RequestStatus, SelectionStatus, StudentStatus
from wandernest.models.base import BaseModel
from wandernest.services import assignment, matching, review_metrics
from wandernest.utils.errors import (
    ConflictError,
    GuideNotApproved,
    InvalidSelection,
    RequestAlreadyAccepted,
    RequestClosed,
    RequestExpired,
    RequestNotFound,
    SelectionAlreadyResolved,
    SelectionConflict,
    SelectionNotFound,
    StudentNotFound,
)
from wandernest.utils.redis_cache import MatchCache, StudentMetricsCache

from factories import make_request, make_student, null_match_cache, setup_db


def _selected(db, guides=2, **request_kwargs):
    students = [make_student(db) for _ in range(guides)]
    request = make_request(db, **request_kwargs)
    assignment.select_guides(db, request.id, [s.id for s in students], cache=null_match_cache())
    return request, students


def _selection(db, request_id, student_id):
    return (
        db.query(models.RequestSelection)
        .filter_by(request_id=request_id, student_id=student_id)
        .one()
    )


# ─── Selecting guides ──────────────────────────────────────────────────────────


def test_select_guides_marks_request_matched():
    db = setup_db()
    request, students = _selected(db, guides=3)

    db.refresh(request)
    assert request.status == RequestStatus.MATCHED
    selections = db.query(models.RequestSelection).filter_by(request_id=request.id).all()
    assert {s.student_id for s in selections} == {s.id for s in students}
    assert all(s.status == SelectionStatus.PENDING for s in selections)


def test_reselecting_replaces_the_shortlist():
    db = setup_db()
    request, students = _selected(db, guides=2)
    newcomer = make_student(db)

    outcome = assignment.select_guides(
        db, request.id, [newcomer.id], cache=null_match_cache()
    )

    rows = db.query(models.RequestSelection).filter_by(request_id=request.id).all()
    assert [r.student_id for r in rows] == [newcomer.id]
    assert [g.id for g in outcome.guides] == [newcomer.id]
    assert outcome.request.city == "Paris"


def test_select_guides_validates_shortlist():
    db = setup_db()
    request = make_request(db)
    pending = make_student(db, status=StudentStatus.PENDING_APPROVAL)
    londoner = make_student(db, city="London")
    many = [make_student(db).id for _ in range(5)]

    with pytest.raises(InvalidSelection):
        assignment.select_guides(db, request.id, [pending.id])
    with pytest.raises(InvalidSelection):
        assignment.select_guides(db, request.id, [londoner.id])
    with pytest.raises(InvalidSelection):
        assignment.select_guides(db, request.id, many)
    with pytest.raises(InvalidSelection):
        assignment.select_guides(db, request.id, [])

    db.refresh(request)
    assert request.status == RequestStatus.PENDING


def test_matches_are_cached_and_cleared_on_accept():
    db = setup_db()
    cache = MatchCache(client=fakeredis.FakeStrictRedis())
    guide = make_student(db, average_rating=4.5, interests=["food"])
    request = make_request(db, interests=["food"])

    cards = assignment.get_request_matches(db, request.id, cache=cache)
    assert cards[0]["anonymous_id"] == matching.generate_anonymous_id(guide.id)
    assert cache.get(request.id) == cards

    labels = [cards[0]["anonymous_id"]]
    ids = assignment.resolve_anonymous_ids(db, request.id, labels, cache=cache)
    assignment.select_guides(db, request.id, ids, cache=cache)
    assignment.get_request_matches(db, request.id, cache=cache)
    assignment.accept_selection(db, request.id, guide.id, cache=cache)

    assert cache.get(request.id) is None


def test_unknown_label_cannot_be_selected():
    db = setup_db()
    make_student(db)
    request = make_request(db)

    with pytest.raises(InvalidSelection) as exc_info:
        assignment.resolve_anonymous_ids(
            db, request.id, ["Guide #9999x"], cache=null_match_cache()
        )
    assert exc_info.value.field == "anonymous_ids"


# ─── Accepting ─────────────────────────────────────────────────────────────────


def test_accept_books_guide_and_rejects_siblings():
    db = setup_db()
    request, (winner, *others) = _selected(db, guides=3)

    outcome = assignment.accept_selection(db, request.id, winner.id, cache=null_match_cache())

    db.refresh(request)
    assert request.status == RequestStatus.ACCEPTED
    assert request.assigned_student_id == winner.id
    assert outcome.selection.status == SelectionStatus.ACCEPTED
    assert outcome.selection.accepted_at is not None
    for other in others:
        assert _selection(db, request.id, other.id).status == SelectionStatus.REJECTED
    db.refresh(winner)
    assert winner.trips_hosted == 1
    assert outcome.tourist_contact["email"] == request.email
    assert outcome.tourist_contact["phone"] == request.phone


def test_second_accept_sees_already_accepted():
    db = setup_db()
    request, (first, second) = _selected(db, guides=2)
    assignment.accept_selection(db, request.id, first.id, cache=null_match_cache())

    with pytest.raises(RequestAlreadyAccepted):
        assignment.accept_selection(db, request.id, second.id, cache=null_match_cache())

    accepted = (
        db.query(models.RequestSelection)
        .filter_by(request_id=request.id, status=SelectionStatus.ACCEPTED)
        .count()
    )
    assert accepted == 1


def test_accept_from_pending_request_with_selection():
    db = setup_db()
    guide = make_student(db)
    request = make_request(db)
    db.add(models.RequestSelection(request_id=request.id, student_id=guide.id))
    db.commit()

    assignment.accept_selection(db, request.id, guide.id, cache=null_match_cache())

    db.refresh(request)
    assert request.status == RequestStatus.ACCEPTED


def test_accept_requires_a_selection():
    db = setup_db()
    request, _ = _selected(db, guides=1)
    stranger = make_student(db)

    with pytest.raises(SelectionNotFound):
        assignment.accept_selection(db, request.id, stranger.id)


def test_accept_after_rejecting_is_already_resolved():
    db = setup_db()
    request, (guide, _other) = _selected(db, guides=2)
    assignment.reject_selection(db, request.id, guide.id)

    with pytest.raises(SelectionAlreadyResolved):
        assignment.accept_selection(db, request.id, guide.id)


def test_suspended_guide_cannot_accept():
    db = setup_db()
    request, (guide,) = _selected(db, guides=1)
    guide.status = StudentStatus.SUSPENDED
    db.commit()

    with pytest.raises(GuideNotApproved):
        assignment.accept_selection(db, request.id, guide.id)

    db.refresh(request)
    assert request.status == RequestStatus.MATCHED
    assert request.assigned_student_id is None


def test_accept_refuses_expired_and_cancelled_requests():
    db = setup_db()
    request, (guide,) = _selected(db, guides=1)
    request.expires_at = datetime.utcnow() - timedelta(minutes=1)
    db.commit()

    with pytest.raises(RequestExpired):
        assignment.accept_selection(db, request.id, guide.id)

    other, (guide2,) = _selected(db, guides=1)
    assignment.cancel_request(db, other.id, cache=null_match_cache())
    with pytest.raises(RequestClosed):
        assignment.accept_selection(db, other.id, guide2.id)


def test_accept_unknown_request():
    db = setup_db()
    guide = make_student(db)

    with pytest.raises(RequestNotFound):
        assignment.accept_selection(db, "missing", guide.id)


def test_concurrent_accepts_have_one_winner(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    event.listen(engine, "connect", database._set_sqlite_pragma)
    BaseModel.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, expire_on_commit=False)

    with Session() as db:
        request, students = _selected(db, guides=2)
        request_id = request.id
        guide_ids = [s.id for s in students]

    barrier = threading.Barrier(len(guide_ids))
    results = []

    def _accept(student_id):
        db = Session()
        try:
            barrier.wait()
            assignment.accept_selection(db, request_id, student_id, cache=null_match_cache())
            results.append(("won", student_id))
        except RequestAlreadyAccepted:
            results.append(("lost", student_id))
        finally:
            db.close()

    threads = [threading.Thread(target=_accept, args=(sid,)) for sid in guide_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(r[0] for r in results) == ["lost", "won"]
    winner = next(sid for outcome, sid in results if outcome == "won")
    with Session() as db:
        stored = db.get(models.TouristRequest, request_id)
        assert stored.status == RequestStatus.ACCEPTED
        assert stored.assigned_student_id == winner
        statuses = sorted(
            s.status.value
            for s in db.query(models.RequestSelection).filter_by(request_id=request_id)
        )
        assert statuses == ["accepted", "rejected"]
    engine.dispose()


# ─── Rejecting ─────────────────────────────────────────────────────────────────


def test_reject_selection():
    db = setup_db()
    request, (guide, _other) = _selected(db, guides=2)

    selection = assignment.reject_selection(db, request.id, guide.id)

    assert selection.status == SelectionStatus.REJECTED
    db.refresh(request)
    assert request.status == RequestStatus.MATCHED
    with pytest.raises(SelectionAlreadyResolved):
        assignment.reject_selection(db, request.id, guide.id)


def test_reject_unknown_selection():
    db = setup_db()
    request = make_request(db)

    with pytest.raises(SelectionNotFound):
        assignment.reject_selection(db, request.id, "nobody")


def test_reject_reports_status_change_between_read_and_write():
    db = setup_db()
    request, (guide,) = _selected(db, guides=1)
    selection_id = _selection(db, request.id, guide.id).id
    fired = []

    @event.listens_for(db, "do_orm_execute")
    def _accept_first(orm_execute_state):
        if orm_execute_state.is_update and not fired:
            fired.append(True)
            orm_execute_state.session.connection().execute(
                text("UPDATE request_selections SET status = 'accepted' WHERE id = :id"),
                {"id": selection_id},
            )

    with pytest.raises(SelectionConflict) as exc_info:
        assignment.reject_selection(db, request.id, guide.id)

    assert exc_info.value.message == "Request status changed. Please refresh."
    assert fired


def test_reject_refuses_closed_requests():
    db = setup_db()
    cancelled, (guide,) = _selected(db, guides=1)
    assignment.cancel_request(db, cancelled.id, cache=null_match_cache())

    with pytest.raises(RequestClosed):
        assignment.reject_selection(db, cancelled.id, guide.id)
    assert _selection(db, cancelled.id, guide.id).status == SelectionStatus.PENDING

    expired = make_request(
        db, status=RequestStatus.MATCHED, expires_at=datetime.utcnow() - timedelta(hours=1)
    )
    db.add(models.RequestSelection(request_id=expired.id, student_id=guide.id))
    db.commit()

    with pytest.raises(RequestExpired):
        assignment.reject_selection(db, expired.id, guide.id)
    assert _selection(db, expired.id, guide.id).status == SelectionStatus.PENDING


# ─── Admin assignment ──────────────────────────────────────────────────────────


def test_assign_guide_without_selection():
    db = setup_db()
    guide = make_student(db)
    request = make_request(db)

    outcome = assignment.assign_guide(db, request.id, guide.id, cache=null_match_cache())

    db.refresh(request)
    db.refresh(guide)
    assert request.status == RequestStatus.ACCEPTED
    assert request.assigned_student_id == guide.id
    selection = _selection(db, request.id, guide.id)
    assert selection.id == outcome.selection_id
    assert selection.status == SelectionStatus.ACCEPTED
    assert guide.trips_hosted == 1


def test_admin_reassign_moves_trip_count():
    db = setup_db()
    a = make_student(db, trips_hosted=4)
    b = make_student(db, trips_hosted=2)
    request = make_request(db)
    assignment.select_guides(db, request.id, [a.id, b.id], cache=null_match_cache())
    assignment.accept_selection(db, request.id, a.id, cache=null_match_cache())
    db.refresh(a)
    assert a.trips_hosted == 5

    outcome = assignment.assign_guide(db, request.id, b.id, cache=null_match_cache())

    db.refresh(a)
    db.refresh(b)
    db.refresh(request)
    assert a.trips_hosted == 4
    assert b.trips_hosted == 3
    assert request.assigned_student_id == b.id
    assert request.status == RequestStatus.ACCEPTED
    assert outcome.previous_student_id == a.id
    assert _selection(db, request.id, a.id).status == SelectionStatus.REJECTED
    assert _selection(db, request.id, b.id).status == SelectionStatus.ACCEPTED


def test_accept_clears_cached_guide_metrics():
    db = setup_db()
    metrics_cache = StudentMetricsCache(client=fakeredis.FakeStrictRedis())
    request, (guide,) = _selected(db, guides=1)
    assert review_metrics.get_student_metrics(db, guide.id, cache=metrics_cache).trips_hosted == 0

    assignment.accept_selection(
        db, request.id, guide.id, cache=null_match_cache(), metrics_cache=metrics_cache
    )

    assert metrics_cache.get(guide.id) is None
    assert review_metrics.get_student_metrics(db, guide.id, cache=metrics_cache).trips_hosted == 1


def test_reassign_clears_both_guides_cached_metrics():
    db = setup_db()
    metrics_cache = StudentMetricsCache(client=fakeredis.FakeStrictRedis())
    a = make_student(db, trips_hosted=4)
    b = make_student(db, trips_hosted=2)
    request = make_request(db)
    assignment.assign_guide(
        db, request.id, a.id, cache=null_match_cache(), metrics_cache=metrics_cache
    )
    for guide in (a, b):
        review_metrics.get_student_metrics(db, guide.id, cache=metrics_cache)
    assert metrics_cache.get(a.id)["trips_hosted"] == 5

    assignment.assign_guide(
        db, request.id, b.id, cache=null_match_cache(), metrics_cache=metrics_cache
    )

    assert metrics_cache.get(a.id) is None
    assert metrics_cache.get(b.id) is None
    assert review_metrics.get_student_metrics(db, a.id, cache=metrics_cache).trips_hosted == 4
    assert review_metrics.get_student_metrics(db, b.id, cache=metrics_cache).trips_hosted == 3


def test_reassigning_same_guide_keeps_counts():
    db = setup_db()
    guide = make_student(db)
    request = make_request(db)
    assignment.assign_guide(db, request.id, guide.id, cache=null_match_cache())
    assignment.assign_guide(db, request.id, guide.id, cache=null_match_cache())

    db.refresh(guide)
    assert guide.trips_hosted == 1


def test_assign_guide_preconditions():
    db = setup_db()
    guide = make_student(db)
    pending_guide = make_student(db, status=StudentStatus.PENDING_APPROVAL)
    cancelled = make_request(db, status=RequestStatus.CANCELLED)
    expired = make_request(db, expires_at=datetime.utcnow() - timedelta(days=1))
    open_request = make_request(db)

    with pytest.raises(RequestClosed):
        assignment.assign_guide(db, cancelled.id, guide.id)
    with pytest.raises(RequestExpired):
        assignment.assign_guide(db, expired.id, guide.id)
    with pytest.raises(GuideNotApproved):
        assignment.assign_guide(db, open_request.id, pending_guide.id)
    with pytest.raises(StudentNotFound):
        assignment.assign_guide(db, open_request.id, "nobody")

    db.refresh(guide)
    assert guide.trips_hosted == 0


# ─── Lifecycle ─────────────────────────────────────────────────────────────────


def test_pending_request_expires_on_read():
    db = setup_db()
    request = make_request(db, expires_at=datetime.utcnow() - timedelta(hours=1))
    request_id = request.id

    read = crud_tourist_request.get_tourist_request(db, request_id)

    assert read.status == RequestStatus.EXPIRED
    stored = db.execute(
        text("SELECT status FROM tourist_requests WHERE id = :id"), {"id": request_id}
    ).scalar()
    assert stored == "EXPIRED"


def test_request_within_deadline_stays_pending():
    db = setup_db()
    request = make_request(db)

    assert crud_tourist_request.get_tourist_request(db, request.id).status == RequestStatus.PENDING


def test_cancel_open_request():
    db = setup_db()
    request, _ = _selected(db, guides=1)

    cancelled = assignment.cancel_request(db, request.id, cache=null_match_cache())

    assert cancelled.status == RequestStatus.CANCELLED
    with pytest.raises(RequestClosed):
        assignment.cancel_request(db, request.id)


def test_accepted_request_cannot_be_cancelled():
    db = setup_db()
    request, (guide,) = _selected(db, guides=1)
    assignment.accept_selection(db, request.id, guide.id, cache=null_match_cache())

    with pytest.raises(ConflictError):
        assignment.cancel_request(db, request.id)
    db.refresh(request)
    assert request.status == RequestStatus.ACCEPTED
