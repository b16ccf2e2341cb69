import pytest

from chat_core.domain.conversation import ConversationLog
from chat_core.domain.exceptions import NotifyError, ValidationError
from chat_core.domain.models import Message, Role


def add_turn(log, first_id, reply="ok"):
    log.append(Message(id=first_id, role=Role.USER, content=f"q{first_id}"))
    log.append(Message(id=first_id + 1, role=Role.ASSISTANT, content=reply))


def test_append_find_and_len():
    log = ConversationLog()
    add_turn(log, 0)
    assert len(log) == 2
    msg = log.find_mutable(1)
    assert msg.role is Role.ASSISTANT
    assert log.find_mutable(99) is None


def test_ids_must_increase():
    log = ConversationLog()
    log.append(Message(id=3, role=Role.USER, content="a"))
    with pytest.raises(ValidationError):
        log.append(Message(id=3, role=Role.ASSISTANT, content=""))


def test_cap_must_be_even():
    with pytest.raises(ValidationError):
        ConversationLog(max_messages=199)


def test_retention_evicts_oldest_turn():
    log = ConversationLog(max_messages=200)
    for turn in range(100):
        add_turn(log, turn * 2)
    assert len(log) == 200
    assert log.snapshot()[0].id == 0

    add_turn(log, 200)
    assert len(log) == 200
    ids = [m.id for m in log.snapshot()]
    assert ids[0] == 2
    assert 0 not in ids and 1 not in ids
    assert ids[-1] == 201


def test_retention_keeps_pairs_over_many_turns():
    log = ConversationLog(max_messages=6)
    for turn in range(20):
        add_turn(log, turn * 2)
        assert len(log) % 2 == 0
        assert len(log) <= 6
        roles = [m.role for m in log.snapshot()]
        assert roles == [Role.USER, Role.ASSISTANT] * (len(log) // 2)


def test_content_mutation_notifies():
    log = ConversationLog()
    calls = []
    log.subscribe(lambda: calls.append(len(log)))
    add_turn(log, 0, reply="")
    assert calls == [1, 2]

    assert log.set_content(1, "Hel")
    assert log.append_content(1, "lo")
    assert log.find_mutable(1).content == "Hello"
    assert len(calls) == 4

    assert not log.set_content(42, "x")
    assert not log.append_content(42, "x")
    assert len(calls) == 4


def test_snapshot_is_detached():
    log = ConversationLog()
    add_turn(log, 0, reply="partial")
    snap = log.snapshot()
    log.set_content(1, "partial and more")
    assert snap[1].content == "partial"
    snap[0].content = "changed"
    assert log.find_mutable(0).content == "q0"


def test_failing_listener_does_not_skip_later_listeners():
    log = ConversationLog()
    add_turn(log, 0, reply="")
    seen = []

    def broken():
        raise RuntimeError("redraw failed")

    log.subscribe(broken)
    log.subscribe(lambda: seen.append(log.find_mutable(1).content))

    with pytest.raises(NotifyError) as excinfo:
        log.set_content(1, "kept")
    assert excinfo.value.failed == 1
    assert isinstance(excinfo.value.first_error, RuntimeError)
    assert seen == ["kept"]
    assert log.find_mutable(1).content == "kept"

    with pytest.raises(NotifyError):
        log.append(Message(id=2, role=Role.USER, content="next"))
    assert len(log) == 3
    assert len(seen) == 2
