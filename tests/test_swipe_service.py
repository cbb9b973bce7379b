"""Unit tests for SwipeService — the write-once swipe ledger."""
import uuid

import pytest

from tandem.errors import DuplicateSwipe, InvalidOperation, NotFound, Unauthenticated
from tandem.models import Match, Swipe


class TestRecordSwipe:
    """Tests for appending swipes."""

    async def test_like_is_recorded(self, swipe_service, db_session, alice, bob, count_rows):
        result = await swipe_service.record_swipe(alice.id, bob.id, "like", db_session)

        assert result["decision"] == "like"
        assert result["is_mutual_match"] is False
        assert result["match_id"] is None

        swipe = await db_session.get(Swipe, result["swipe_id"])
        assert swipe.swiper_id == alice.id
        assert swipe.target_id == bob.id
        assert await count_rows(Match) == 0

    async def test_dislike_never_evaluates_match(self, swipe_service, db_session, alice, bob, count_rows):
        await swipe_service.record_swipe(bob.id, alice.id, "like", db_session)
        result = await swipe_service.record_swipe(alice.id, bob.id, "dislike", db_session)

        assert result["is_mutual_match"] is False
        assert await count_rows(Match) == 0

    async def test_self_swipe_rejected(self, swipe_service, db_session, alice, count_rows):
        with pytest.raises(InvalidOperation):
            await swipe_service.record_swipe(alice.id, alice.id, "like", db_session)
        assert await count_rows(Swipe) == 0

    async def test_unknown_decision_rejected(self, swipe_service, db_session, alice, bob):
        with pytest.raises(InvalidOperation):
            await swipe_service.record_swipe(alice.id, bob.id, "superlike", db_session)

    async def test_anonymous_actor_rejected(self, swipe_service, db_session, bob):
        with pytest.raises(Unauthenticated):
            await swipe_service.record_swipe(None, bob.id, "like", db_session)

    async def test_unknown_target(self, swipe_service, db_session, alice):
        with pytest.raises(NotFound):
            await swipe_service.record_swipe(alice.id, uuid.uuid4(), "like", db_session)


class TestDuplicateSwipe:
    """A second swipe on the same ordered pair is rejected, never overwritten."""

    @pytest.mark.parametrize("first,second", [
        ("like", "like"),
        ("like", "dislike"),
        ("dislike", "like"),
        ("dislike", "dislike"),
    ])
    async def test_second_swipe_rejected(
        self, swipe_service, db_session, alice, bob, count_rows, first, second,
    ):
        await swipe_service.record_swipe(alice.id, bob.id, first, db_session)

        with pytest.raises(DuplicateSwipe):
            await swipe_service.record_swipe(alice.id, bob.id, second, db_session)

        assert await count_rows(
            Swipe, Swipe.swiper_id == alice.id, Swipe.target_id == bob.id
        ) == 1
        stored = await swipe_service._find_swipe(alice.id, bob.id, db_session)
        assert stored.decision == first

    async def test_reverse_direction_is_a_separate_record(self, swipe_service, db_session, alice, bob, count_rows):
        await swipe_service.record_swipe(alice.id, bob.id, "dislike", db_session)
        await swipe_service.record_swipe(bob.id, alice.id, "dislike", db_session)
        assert await count_rows(Swipe) == 2

    async def test_insert_race_reported_as_duplicate(
        self, swipe_service, db_session, alice, bob, count_rows, monkeypatch,
    ):
        """The unique constraint catches a duplicate the pre-check missed."""
        await swipe_service.record_swipe(alice.id, bob.id, "like", db_session)

        async def _stale_lookup(actor_id, target_id, session):
            return None

        monkeypatch.setattr(swipe_service, "_find_swipe", _stale_lookup)

        with pytest.raises(DuplicateSwipe):
            await swipe_service.record_swipe(alice.id, bob.id, "dislike", db_session)

        # The savepoint rollback leaves the session usable.
        assert await count_rows(Swipe) == 1


class TestSwipedUserIds:

    async def test_lists_targets(self, swipe_service, db_session, alice, bob, carol):
        await swipe_service.record_swipe(alice.id, bob.id, "like", db_session)
        await swipe_service.record_swipe(alice.id, carol.id, "dislike", db_session)

        assert await swipe_service.swiped_user_ids(alice.id, db_session) == {bob.id, carol.id}
        assert await swipe_service.swiped_user_ids(bob.id, db_session) == set()

    async def test_anonymous_is_empty(self, swipe_service, db_session):
        assert await swipe_service.swiped_user_ids(None, db_session) == set()


class TestPairLock:
    """Reciprocal likes on one pair are serialised on the users' rows."""

    async def test_lock_taken_before_any_read(
        self, swipe_service, match_service, db_session, alice, bob, monkeypatch,
    ):
        calls: list[str] = []
        real_lock = match_service.lock_pair
        real_find = swipe_service._find_swipe
        real_has_liked = match_service._has_liked

        async def _lock(first_id, second_id, session):
            calls.append("lock")
            return await real_lock(first_id, second_id, session)

        async def _find(actor_id, target_id, session):
            calls.append("find_swipe")
            return await real_find(actor_id, target_id, session)

        async def _has_liked(swiper_id, target_id, session):
            calls.append("has_liked")
            return await real_has_liked(swiper_id, target_id, session)

        monkeypatch.setattr(match_service, "lock_pair", _lock)
        monkeypatch.setattr(swipe_service, "_find_swipe", _find)
        monkeypatch.setattr(match_service, "_has_liked", _has_liked)

        await swipe_service.record_swipe(alice.id, bob.id, "like", db_session)

        assert calls[0] == "lock"
        assert calls.count("lock") == 1
        assert "find_swipe" in calls and "has_liked" in calls

    async def test_like_committed_while_waiting_is_matched(
        self, swipe_service, match_service, db_session, alice, bob, count_rows, monkeypatch,
    ):
        """Bob's like lands while Alice waits on the lock; once she holds it
        she sees his like and the match is created instead of missed."""
        real_lock = match_service.lock_pair

        async def _lock_after_other_side(first_id, second_id, session):
            session.add(Swipe(swiper_id=bob.id, target_id=alice.id, decision="like"))
            await session.flush()
            return await real_lock(first_id, second_id, session)

        monkeypatch.setattr(match_service, "lock_pair", _lock_after_other_side)

        result = await swipe_service.record_swipe(alice.id, bob.id, "like", db_session)

        assert result["is_mutual_match"] is True
        assert await count_rows(Match) == 1

    async def test_retry_after_match_is_duplicate(
        self, swipe_service, db_session, alice, bob, count_rows,
    ):
        await swipe_service.record_swipe(alice.id, bob.id, "like", db_session)
        await swipe_service.record_swipe(bob.id, alice.id, "like", db_session)

        with pytest.raises(DuplicateSwipe):
            await swipe_service.record_swipe(alice.id, bob.id, "like", db_session)
        assert await count_rows(Match) == 1
