import pytest

from gbp_scan.core.models import PlaceRecord, ScoreSet
from gbp_scan.scan import scoring


def _place(**overrides):
    values = dict(place_id="pid", name="Acme")
    values.update(overrides)
    return PlaceRecord(**values)


def _full_place(photo_count=15, rating=5.0, review_count=50):
    return _place(
        rating=rating,
        review_count=review_count,
        address="1 Main St",
        phone="0113 496 0000",
        website="https://example.com",
        opening_hours={"open_now": True},
        photos=[{}] * photo_count,
    )


def test_reviews_score_bounds():
    assert scoring.reviews_score(5, 50) == 100
    assert scoring.reviews_score(0, 0) == 0
    assert scoring.reviews_score(None, 10) == 0
    assert scoring.reviews_score(4.0, 0) == 0
    assert scoring.reviews_score(5, 1000) == 100


def test_reviews_score_weighting():
    # 0.7 * 90 + 0.3 * 40 = 75
    assert scoring.reviews_score(4.5, 20) == 75


def test_photos_score():
    assert scoring.photos_score(0) == 0
    assert scoring.photos_score(15) == 100
    assert scoring.photos_score(20) == 100
    assert scoring.photos_score(3) == 20
    # 10/15 -> 67, plus the bonus
    assert scoring.photos_score(10) == 77


def test_engagement_score_terms_are_independent():
    assert scoring.engagement_score(_place()) == 0
    assert scoring.engagement_score(_place(review_count=1)) == 40
    assert scoring.engagement_score(_place(website="https://x")) == 30
    assert scoring.engagement_score(_place(opening_hours={"periods": []}, phone="1")) == 60
    assert scoring.engagement_score(_full_place()) == 100


def test_completeness_score():
    assert scoring.completeness_score(_full_place()) == 100
    assert scoring.completeness_score(_place(name="")) == 0
    assert scoring.completeness_score(_place()) == 17
    assert scoring.completeness_score(_place(address="x", phone="y")) == 50


def test_overall_score_formula():
    # 0.3*80 + 0.25*70 + 0.15*20 + 0.15*50 + 15 = 67
    assert scoring.overall_score(80, 70, 20, 50) == 67
    # 0.3*75 + 0.25*40 + 0.15*0 + 0.15*33 + 15 = 52.45
    assert scoring.overall_score(75, 40, 0, 33) == 52
    assert scoring.overall_score(0, 0, 0, 0) == 15
    assert scoring.overall_score(100, 100, 100, 100) == 100


def test_score_place_extremes_stay_in_range():
    for place in (_full_place(photo_count=40, rating=5, review_count=1000), _place(rating=0, review_count=0)):
        scores = scoring.score_place(place)
        for value in scores.to_dict().values():
            assert 0 <= value <= 100


def test_score_place_full_profile():
    assert scoring.score_place(_full_place()) == ScoreSet(
        overall=100, reviews=100, engagement=100, photos=100, completeness=100
    )


def test_score_place_empty_profile():
    scores = scoring.score_place(_place(name=""))
    assert scores == ScoreSet(overall=15, reviews=0, engagement=0, photos=0, completeness=0)


def test_score_place_is_deterministic():
    place = _full_place(photo_count=7, rating=4.2, review_count=13)
    assert scoring.score_place(place) == scoring.score_place(place)


@pytest.mark.parametrize(
    "scores, issues",
    [
        (ScoreSet(100, 100, 100, 100, 100), 0),
        (ScoreSet(15, 0, 0, 0, 0), 4),
        (ScoreSet(60, 69, 60, 50, 80), 1),
    ],
)
def test_generate_analysis(scores, issues):
    analysis = scoring.generate_analysis(scores)
    assert len(analysis["issues"]) == issues
    assert len(analysis["issues"]) + len(analysis["strengths"]) == 4
