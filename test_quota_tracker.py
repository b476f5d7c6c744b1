from datetime import timedelta
import pytest
from nyayaprep.errors import InvalidInputError, NotFoundError
from nyayaprep.services import quota_tracker
from nyayaprep.services.quota_tracker import ASK_TEACHER, QUIZ, check_and_consume


def test_limits_per_plan():
    assert quota_tracker.limit_for("free", QUIZ) == 2
    assert quota_tracker.limit_for("basic", QUIZ) == 5
    assert quota_tracker.limit_for("premium", QUIZ) is None
    assert quota_tracker.limit_for("free", ASK_TEACHER) == 0
    assert quota_tracker.limit_for("basic", ASK_TEACHER) == 2
    assert quota_tracker.limit_for("premium", ASK_TEACHER) == 20


def test_unknown_plan_or_feature_is_rejected():
    with pytest.raises(InvalidInputError):
        quota_tracker.limit_for("gold", QUIZ)
    with pytest.raises(InvalidInputError):
        quota_tracker.limit_for("basic", "downloads")


def test_is_today_uses_local_calendar(now):
    # 06:00 UTC is 11:45 in Kathmandu; 18:20 UTC the previous day is already 00:05 local today
    assert quota_tracker.is_today(now.replace(hour=0), now)
    assert quota_tracker.is_today(now - timedelta(hours=11, minutes=40), now)
    assert not quota_tracker.is_today(now - timedelta(hours=11, minutes=50), now)
    assert not quota_tracker.is_today(None, now)


async def test_stale_counter_counts_as_zero(store, make_user, now):
    profile = await make_user(quiz_count_today=99, last_quiz_date=now - timedelta(days=1))

    assert quota_tracker.usage_today(profile, QUIZ, now) == 0
    decision = await check_and_consume(store, profile, QUIZ, 1, now)

    assert decision.allowed
    assert decision.new_count == 1
    saved = await store.get_user("u1")
    assert saved.quiz_count_today == 1
    assert saved.last_quiz_date == now


async def test_exhaustion_then_refusal_leaves_counter(store, make_user, now):
    profile = await make_user(subscription_plan="basic", validated=True)
    limit = 5

    counts = []
    for _ in range(limit):
        decision = await check_and_consume(store, profile, QUIZ, limit, now)
        assert decision.allowed
        counts.append(decision.new_count)
    assert counts == [1, 2, 3, 4, 5]

    writes_before = len(store.writes)
    refused = await check_and_consume(store, profile, QUIZ, limit, now)
    assert not refused.allowed
    assert refused.new_count == 5
    assert len(store.writes) == writes_before
    assert (await store.get_user("u1")).quiz_count_today == 5


async def test_zero_limit_never_consumes(store, make_user, now):
    profile = await make_user()
    decision = await check_and_consume(store, profile, ASK_TEACHER, 0, now)
    assert decision == (False, 0)
    assert store.writes == []


async def test_unlimited_keeps_counting(store, make_user, now):
    profile = await make_user(subscription_plan="premium", validated=True)
    for _ in range(30):
        decision = await check_and_consume(store, profile, QUIZ, None, now)
    assert decision.allowed and decision.new_count == 30
    assert quota_tracker.remaining_today(profile, QUIZ, None, now) is None


async def test_consume_writes_only_the_counter_fields(store, make_user, now):
    profile = await make_user(subscription_plan="basic", validated=True)
    await check_and_consume(store, profile, ASK_TEACHER, 2, now)
    assert store.writes == [("users", "u1", {"ask_teacher_count", "last_ask_teacher_date"})]


async def test_counters_are_independent(store, make_user, now):
    profile = await make_user(subscription_plan="basic", validated=True,
                              ask_teacher_count=2, last_ask_teacher_date=now)
    decision = await check_and_consume(store, profile, QUIZ, 5, now)
    assert decision.allowed
    assert quota_tracker.usage_today(profile, ASK_TEACHER, now) == 2
    assert quota_tracker.remaining_today(profile, ASK_TEACHER, 2, now) == 0


async def test_reset_usage(store, make_user, now):
    await make_user(quiz_count_today=2, last_quiz_date=now)
    await quota_tracker.reset_usage(store, "u1", QUIZ)
    assert (await store.get_user("u1")).quiz_count_today == 0

    with pytest.raises(NotFoundError):
        await quota_tracker.reset_usage(store, "ghost", QUIZ)
