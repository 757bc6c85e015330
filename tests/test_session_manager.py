"""Tests for the in-memory session store."""
import random
import threading

import pytest

from chatrelay.models import MAX_MESSAGE_LENGTH, Condition, Role
from chatrelay.session_manager import SessionStore, resolve_condition


@pytest.fixture
def store():
    """Store with a seeded RNG."""
    return SessionStore(system_prompt="Be brief.", rng=random.Random(42))


@pytest.mark.parametrize("hint", ["AI", "ai", "Ai"])
def test_ai_hint_forces_ai(store, hint):
    """An AI hint in any case always gives an AI session."""
    for _ in range(20):
        assert store.create(hint).condition == Condition.AI


@pytest.mark.parametrize("hint", ["HUMAN", "human", "Human"])
def test_human_hint_forces_human(store, hint):
    """A HUMAN hint in any case always gives a human session."""
    for _ in range(20):
        assert store.create(hint).condition == Condition.HUMAN


@pytest.mark.parametrize("hint", [None, "", "mixed", "robot"])
def test_other_hints_pick_roughly_uniformly(hint):
    """Missing or unknown hints split evenly between conditions."""
    rng = random.Random(7)
    picks = [resolve_condition(hint, rng) for _ in range(2000)]
    ai_share = picks.count(Condition.AI) / len(picks)
    assert 0.45 < ai_share < 0.55


def test_create_initial_state(store):
    """A new session is empty, not awaiting, and carries the system prompt."""
    session = store.create("HUMAN")
    assert session.id
    assert session.messages == []
    assert session.awaiting_operator is False
    assert session.system_prompt == "Be brief."
    assert session.created_at.tzinfo is not None
    assert store.get(session.id) is session


def test_ids_are_unique(store):
    """Session ids do not collide."""
    ids = {store.create().id for _ in range(500)}
    assert len(ids) == 500


def test_get_unknown_returns_none(store):
    """Unknown or empty ids are a None lookup, not an error."""
    assert store.get("nope") is None
    assert store.get(None) is None


def test_sequence_is_global_across_sessions(store):
    """Sequence numbers come from one counter shared by all sessions."""
    a = store.create("AI")
    b = store.create("HUMAN")
    seq = [
        store.append(a, Role.USER, "1").i,
        store.append(b, Role.USER, "2").i,
        store.append(a, Role.AI, "3").i,
        store.append(b, Role.HUMAN, "4").i,
    ]
    assert seq == [1, 2, 3, 4]
    assert store.last_index == 4


def test_append_truncates_text(store):
    """Appended text is cut to the maximum length."""
    session = store.create("AI")
    message = store.append(session, Role.USER, "x" * (MAX_MESSAGE_LENGTH + 50))
    assert len(message.text) == MAX_MESSAGE_LENGTH


def test_awaiting_flag_follows_last_role(store):
    """User turns open the operator flag, human turns close it."""
    session = store.create("HUMAN")
    store.append(session, Role.USER, "hola")
    assert session.awaiting_operator is True
    store.append(session, Role.HUMAN, "hi there")
    assert session.awaiting_operator is False
    store.append(session, Role.USER, "again")
    assert session.awaiting_operator is True


def test_awaiting_flag_never_set_for_ai(store):
    """AI sessions never await an operator."""
    session = store.create("AI")
    store.append(session, Role.USER, "hola")
    assert session.awaiting_operator is False


def test_since_excludes_cursor_and_older(store):
    """since() only returns messages strictly after the cursor."""
    session = store.create("HUMAN")
    first = store.append(session, Role.USER, "one")
    second = store.append(session, Role.HUMAN, "two")
    assert [m.i for m in store.since(session, 0)] == [first.i, second.i]
    assert store.since(session, first.i) == [second]
    assert store.since(session, second.i) == []


def test_since_is_idempotent(store):
    """Repeated reads with the same cursor agree."""
    session = store.create("HUMAN")
    store.append(session, Role.USER, "one")
    assert store.since(session, 0) == store.since(session, 0)


def test_since_with_nan_cursor_is_empty(store):
    """A non-numeric cursor matches no message."""
    session = store.create("HUMAN")
    store.append(session, Role.USER, "one")
    assert store.since(session, float("nan")) == []


def test_history_filters_roles(store):
    """history() drops excluded roles and keeps the latest user turn."""
    session = store.create("AI")
    store.append(session, Role.USER, "q1")
    store.append(session, Role.AI, "a1")
    store.append(session, Role.USER, "q2")
    history = store.history(session, exclude_roles=(Role.AI,))
    assert [m.text for m in history] == ["q1", "q2"]


def test_concurrent_appends_get_distinct_sequence_numbers(store):
    """Appends from several threads never share a sequence number."""
    sessions = [store.create("HUMAN") for _ in range(4)]

    def worker(session):
        for n in range(200):
            store.append(session, Role.USER if n % 2 else Role.HUMAN, str(n))

    threads = [threading.Thread(target=worker, args=(s,)) for s in sessions]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    indexes = [m.i for s in sessions for m in s.messages]
    assert len(indexes) == len(set(indexes)) == 800
    for s in sessions:
        per_session = [m.i for m in s.messages]
        assert per_session == sorted(per_session)
