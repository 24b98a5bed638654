import fakeredis
import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from wandernest import models
from wandernest.api import api_review
from wandernest.crud import crud_review
from wandernest.models import ReliabilityBadge, RequestStatus
from wandernest.schemas.review import ReviewCreate
from wandernest.services import review_metrics
from wandernest.utils.errors import RequestNotFound, ReviewAlreadyExists, ReviewNotPermitted
from wandernest.utils.redis_cache import StudentMetricsCache

from factories import make_request, make_student, null_metrics_cache, setup_db


def accepted_request(db, student):
    return make_request(db, status=RequestStatus.ACCEPTED, assigned_student_id=student.id)


def review(db, student, rating=5, no_show=False, **extra):
    request = accepted_request(db, student)
    review_in = ReviewCreate(
        request_id=request.id,
        student_id=student.id,
        rating=rating,
        no_show=no_show,
        **extra,
    )
    return crud_review.create_review(db, review_in, cache=null_metrics_cache())


def test_create_review_updates_guide_metrics():
    db = setup_db()
    guide = make_student(db)

    created = review(db, guide, rating=4, text="Lovely walk", attributes=["friendly", "punctual"])

    assert created.rating == 4
    assert created.attributes == ["friendly", "punctual"]
    db.refresh(guide)
    assert guide.average_rating == 4.0
    assert guide.no_show_count == 0
    assert guide.trips_hosted == 1
    assert guide.reliability_badge == ReliabilityBadge.BRONZE


def test_review_requires_accepted_request_for_that_guide():
    db = setup_db()
    guide = make_student(db)
    other = make_student(db)
    open_request = make_request(db)
    booked = accepted_request(db, other)

    with pytest.raises(ReviewNotPermitted):
        crud_review.create_review(
            db, ReviewCreate(request_id=open_request.id, student_id=guide.id, rating=5)
        )
    with pytest.raises(ReviewNotPermitted):
        crud_review.create_review(
            db, ReviewCreate(request_id=booked.id, student_id=guide.id, rating=5)
        )
    with pytest.raises(RequestNotFound):
        crud_review.create_review(
            db, ReviewCreate(request_id="missing", student_id=guide.id, rating=5)
        )


def test_second_review_for_request_is_refused():
    db = setup_db()
    guide = make_student(db)
    first = review(db, guide, rating=5)
    db.refresh(guide)
    before = (guide.average_rating, guide.no_show_count, guide.trips_hosted, guide.reliability_badge)

    with pytest.raises(ReviewAlreadyExists):
        crud_review.create_review(
            db,
            ReviewCreate(request_id=first.request_id, student_id=guide.id, rating=1, no_show=True),
            cache=null_metrics_cache(),
        )

    db.refresh(guide)
    after = (guide.average_rating, guide.no_show_count, guide.trips_hosted, guide.reliability_badge)
    assert after == before
    stored = crud_review.get_review_by_request(db, first.request_id)
    assert stored.id == first.id
    assert stored.rating == 5


def test_recompute_is_idempotent():
    db = setup_db()
    guide = make_student(db)
    for rating, no_show in ((5, False), (3, False), (1, True)):
        review(db, guide, rating=rating, no_show=no_show)

    first = review_metrics.recompute_metrics(db, guide.id)
    db.commit()
    second = review_metrics.recompute_metrics(db, guide.id)
    db.commit()

    assert first == second
    assert first.average_rating == pytest.approx(3.0)
    assert first.no_show_count == 1
    assert first.trips_hosted == 2
    assert first.total_reviews == 3
    assert first.completion_rate == pytest.approx(200 / 3)
    db.refresh(guide)
    assert guide.trips_hosted == 2


def test_recompute_without_reviews_changes_nothing():
    db = setup_db()
    guide = make_student(db, average_rating=4.2, trips_hosted=3)

    assert review_metrics.recompute_metrics(db, guide.id) is None
    db.refresh(guide)
    assert guide.average_rating == 4.2
    assert guide.trips_hosted == 3


@pytest.mark.parametrize(
    "completion_rate,total,badge",
    [
        (100.0, 10, ReliabilityBadge.GOLD),
        (95.0, 10, ReliabilityBadge.GOLD),
        (94.9, 10, ReliabilityBadge.SILVER),
        (100.0, 9, ReliabilityBadge.SILVER),
        (90.0, 5, ReliabilityBadge.SILVER),
        (100.0, 4, ReliabilityBadge.BRONZE),
        (89.9, 50, ReliabilityBadge.BRONZE),
    ],
)
def test_reliability_badge_thresholds(completion_rate, total, badge):
    assert review_metrics.reliability_badge(completion_rate, total) == badge


def test_ten_clean_reviews_earn_gold():
    db = setup_db()
    guide = make_student(db)
    for _ in range(10):
        review(db, guide, rating=5)

    db.refresh(guide)
    assert guide.reliability_badge == ReliabilityBadge.GOLD
    assert guide.trips_hosted == 10


def test_review_text_and_attributes_are_validated():
    with pytest.raises(ValidationError):
        ReviewCreate(request_id="r", student_id="s", rating=5, text="x" * 501)
    with pytest.raises(ValidationError):
        ReviewCreate(request_id="r", student_id="s", rating=5, attributes=["grumpy"])
    with pytest.raises(ValidationError):
        ReviewCreate(request_id="r", student_id="s", rating=6)
    ok = ReviewCreate(
        request_id="r", student_id="s", rating=5, attributes=["friendly", "friendly"]
    )
    assert ok.attributes == ["friendly"]


def test_metrics_cache_is_invalidated_by_new_review():
    db = setup_db()
    cache = StudentMetricsCache(client=fakeredis.FakeStrictRedis())
    guide = make_student(db)
    review(db, guide, rating=4)

    metrics = review_metrics.get_student_metrics(db, guide.id, cache=cache)
    assert metrics.total_reviews == 1
    assert cache.get(guide.id)["average_rating"] == 4.0

    request = accepted_request(db, guide)
    crud_review.create_review(
        db,
        ReviewCreate(request_id=request.id, student_id=guide.id, rating=2),
        cache=cache,
    )

    assert cache.get(guide.id) is None
    refreshed = review_metrics.get_student_metrics(db, guide.id, cache=cache)
    assert refreshed.total_reviews == 2
    assert refreshed.average_rating == 3.0


def test_list_student_reviews():
    db = setup_db()
    guide = make_student(db)
    review(db, guide, rating=5)
    review(db, guide, rating=3)

    reviews = api_review.list_reviews_for_student(guide.id, skip=0, limit=100, db=db)

    assert sorted(r.rating for r in reviews) == [3, 5]
    assert api_review.list_reviews_for_student("nobody", skip=0, limit=100, db=db) == []


def test_duplicate_review_route_returns_conflict():
    db = setup_db()
    guide = make_student(db)
    first = review(db, guide)

    review_in = ReviewCreate(request_id=first.request_id, student_id=guide.id, rating=4)
    with pytest.raises(HTTPException) as exc_info:
        api_review.create_review(db=db, review_in=review_in, cache=null_metrics_cache())

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail["field_errors"] == {"request_id": "review_exists"}


def test_metrics_route_unknown_student():
    db = setup_db()

    with pytest.raises(HTTPException) as exc_info:
        api_review.get_student_metrics("nobody", db=db, cache=null_metrics_cache())

    assert exc_info.value.status_code == 404
