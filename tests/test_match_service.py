"""Unit tests for MatchService — mutual-like resolution and moderation."""
import uuid

import pytest
from sqlalchemy import event
from sqlalchemy.dialects import postgresql

from tandem.errors import NotFound, Unauthenticated, Unauthorized
from tandem.models import Match
from tandem.services.match_service import MODERATE_MATCHES, MatchService, canonical_pair

MODERATOR_ID = uuid.uuid4()


class TestCanonicalPair:

    def test_commutative(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        assert canonical_pair(a, b) == canonical_pair(b, a)

    def test_lower_string_first(self):
        low = uuid.UUID("00000000-0000-4000-8000-000000000001")
        high = uuid.UUID("ffffffff-0000-4000-8000-000000000001")
        assert canonical_pair(high, low) == (low, high)


class TestEvaluate:
    """Tests for match materialisation on reciprocal likes."""

    async def test_one_sided_like_creates_nothing(self, swipe_service, match_service, db_session, alice, bob, count_rows):
        await swipe_service.record_swipe(alice.id, bob.id, "like", db_session)

        assert await match_service.evaluate(alice.id, bob.id, db_session) is None
        assert await count_rows(Match) == 0

    @pytest.mark.parametrize("alice_first", [True, False])
    async def test_mutual_like_creates_one_canonical_match(
        self, swipe_service, db_session, alice, bob, count_rows, alice_first,
    ):
        first, second = (alice, bob) if alice_first else (bob, alice)

        await swipe_service.record_swipe(first.id, second.id, "like", db_session)
        result = await swipe_service.record_swipe(second.id, first.id, "like", db_session)

        assert result["is_mutual_match"] is True
        match = await db_session.get(Match, result["match_id"])
        assert (match.user_a_id, match.user_b_id) == canonical_pair(alice.id, bob.id)
        assert match.is_active is True
        assert match.created_at is not None
        assert await count_rows(Match) == 1

    async def test_repeat_evaluation_is_idempotent(self, match_service, mutual_match, db_session, alice, bob, count_rows):
        match = await mutual_match(alice, bob)

        again = await match_service.evaluate(alice.id, bob.id, db_session)
        reverse = await match_service.evaluate(bob.id, alice.id, db_session)

        assert again.id == match.id
        assert reverse.id == match.id
        assert await count_rows(Match) == 1

    async def test_lost_insert_race_resolves_to_existing(
        self, swipe_service, match_service, db_session, alice, bob, count_rows, monkeypatch,
    ):
        """Another request inserted the pair between our check and insert."""
        await swipe_service.record_swipe(alice.id, bob.id, "like", db_session)

        user_a_id, user_b_id = canonical_pair(alice.id, bob.id)
        winner = Match(user_a_id=user_a_id, user_b_id=user_b_id, is_active=True)
        db_session.add(winner)
        await db_session.flush()

        real_find = match_service.find_match
        calls = {"n": 0}

        async def _stale_then_real(a, b, session):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return await real_find(a, b, session)

        monkeypatch.setattr(match_service, "find_match", _stale_then_real)

        result = await swipe_service.record_swipe(bob.id, alice.id, "like", db_session)

        assert result["is_mutual_match"] is True
        assert result["match_id"] == winner.id
        assert calls["n"] == 2
        assert await count_rows(Match) == 1

    async def test_retries_exhausted_returns_none(self, db_session, alice, bob, swipe_service, monkeypatch):
        service = MatchService(max_retries=2)
        await swipe_service.record_swipe(alice.id, bob.id, "like", db_session)
        await swipe_service.record_swipe(bob.id, alice.id, "like", db_session)

        async def _always_missing(a, b, session):
            return None

        monkeypatch.setattr(service, "find_match", _always_missing)

        assert await service.evaluate(alice.id, bob.id, db_session) is None

    async def test_deactivated_match_not_resurrected(
        self, match_service, mutual_match, db_session, alice, bob, count_rows,
    ):
        match = await mutual_match(alice, bob)
        await match_service.deactivate(match.id, MODERATOR_ID, {MODERATE_MATCHES}, db_session)

        assert await match_service.evaluate(alice.id, bob.id, db_session) is None
        assert await count_rows(Match) == 1
        assert match.is_active is False


class TestDeactivate:

    async def test_requires_identity(self, match_service, mutual_match, db_session, alice, bob):
        match = await mutual_match(alice, bob)

        with pytest.raises(Unauthenticated):
            await match_service.deactivate(match.id, None, [MODERATE_MATCHES], db_session)
        assert match.is_active is True

    async def test_requires_capability(self, match_service, mutual_match, db_session, alice, bob):
        match = await mutual_match(alice, bob)

        with pytest.raises(Unauthorized):
            await match_service.deactivate(match.id, MODERATOR_ID, set(), db_session)
        assert match.is_active is True

    async def test_deactivate_is_idempotent(self, match_service, mutual_match, db_session, alice, bob):
        match = await mutual_match(alice, bob)

        first = await match_service.deactivate(match.id, MODERATOR_ID, [MODERATE_MATCHES], db_session)
        stamp = first.deactivated_at
        second = await match_service.deactivate(match.id, MODERATOR_ID, [MODERATE_MATCHES], db_session)

        assert second.is_active is False
        assert second.deactivated_at == stamp

    async def test_unknown_match(self, match_service, db_session):
        with pytest.raises(NotFound):
            await match_service.deactivate(uuid.uuid4(), MODERATOR_ID, [MODERATE_MATCHES], db_session)


class TestActiveMatches:

    async def test_lists_either_side_and_skips_inactive(
        self, match_service, mutual_match, db_session, alice, bob, carol,
    ):
        with_bob = await mutual_match(alice, bob)
        with_carol = await mutual_match(carol, alice)
        await match_service.deactivate(with_bob.id, MODERATOR_ID, [MODERATE_MATCHES], db_session)

        active = await match_service.get_active_matches(alice.id, db_session)

        assert [m.id for m in active] == [with_carol.id]
        assert active[0].counterpart(alice.id) == carol.id

    async def test_counterpart_rejects_outsider(self, mutual_match, alice, bob, carol):
        match = await mutual_match(alice, bob)
        assert match.counterpart(alice.id) == bob.id
        with pytest.raises(ValueError):
            match.counterpart(carol.id)


class TestLockPair:

    async def test_locks_in_canonical_order(self, match_service, db_session, alice, bob):
        statements = []

        def _record(orm_execute_state):
            statements.append(orm_execute_state.statement)

        event.listen(db_session.sync_session, "do_orm_execute", _record)
        try:
            forward = await match_service.lock_pair(alice.id, bob.id, db_session)
            backward = await match_service.lock_pair(bob.id, alice.id, db_session)
        finally:
            event.remove(db_session.sync_session, "do_orm_execute", _record)

        assert list(forward) == list(backward) == list(canonical_pair(alice.id, bob.id))
        assert forward[alice.id] is alice
        assert len(statements) == 4
        for stmt in statements:
            sql = str(stmt.compile(dialect=postgresql.dialect()))
            assert "FOR UPDATE" in sql

    async def test_missing_user_left_out(self, match_service, db_session, alice):
        ghost = uuid.uuid4()
        locked = await match_service.lock_pair(alice.id, ghost, db_session)
        assert list(locked) == [alice.id]


class TestMatchView:

    async def test_timestamps_are_utc(self, match_service, mutual_match, db_session, alice, bob):
        match = await mutual_match(alice, bob)
        await match_service.deactivate(match.id, MODERATOR_ID, [MODERATE_MATCHES], db_session)

        view = MatchService.to_view(match)

        assert view["id"] == match.id
        assert view["is_active"] is False
        assert view["created_at"].tzinfo is not None
        assert view["deactivated_at"].tzinfo is not None
