import threading

from chat_core.controller import TurnController
from chat_core.domain.conversation import ConversationLog
from chat_core.domain.models import ChatMessage, Role, TurnPhase
from chat_core.pipeline.scheduler import QueuedScheduler
from chat_core.pipeline.turn_pipeline import TurnPipeline


class FakeProvider:
    name = "fake"

    def __init__(self, reply="ok", gate=None):
        self.reply = reply
        self.gate = gate
        self.requests = []

    def stream_fragments(self, req):
        self.requests.append(req)
        if self.gate is not None:
            self.gate.wait(5)
        yield self.reply


def make_controller(provider, max_messages=200):
    store = ConversationLog(max_messages=max_messages)
    scheduler = QueuedScheduler()
    pipeline = TurnPipeline(provider, store, scheduler, model="chat")
    resets = []
    states = []
    controller = TurnController(
        store,
        pipeline,
        reset_input=lambda: resets.append(True),
        on_state_change=states.append,
    )
    return controller, store, scheduler, resets, states


def wait_idle(controller, scheduler):
    assert scheduler.run_until(lambda: not controller.state.active, timeout=5)


def test_whitespace_submit_is_ignored():
    controller, store, _, resets, states = make_controller(FakeProvider())
    assert controller.submit("   ") is False
    assert controller.submit("") is False
    assert len(store) == 0
    assert controller.state.phase is TurnPhase.IDLE
    assert resets == []
    assert states == []


def test_submit_runs_one_full_cycle():
    provider = FakeProvider(reply="Hello")
    controller, store, scheduler, resets, states = make_controller(provider)
    assert controller.submit("  hi there  ") is True
    assert controller.state.active
    assert controller.state.target_message_id == 1
    assert resets == [True]

    wait_idle(controller, scheduler)
    msgs = store.snapshot()
    assert [(m.id, m.role, m.content) for m in msgs] == [
        (0, Role.USER, "hi there"),
        (1, Role.ASSISTANT, "Hello"),
    ]
    assert [s.active for s in states] == [True, False]
    assert controller.state.target_message_id is None
    assert provider.requests[0].messages == [ChatMessage(role="user", content="hi there")]


def test_submit_while_running_is_a_noop():
    gate = threading.Event()
    controller, store, scheduler, resets, states = make_controller(FakeProvider(gate=gate))
    assert controller.submit("first")
    assert controller.submit("second") is False
    assert len(store) == 2
    assert [m.role for m in store.snapshot()].count(Role.ASSISTANT) == 1
    assert resets == [True]

    gate.set()
    wait_idle(controller, scheduler)
    assert [s.phase for s in states] == [TurnPhase.RUNNING, TurnPhase.IDLE]


def test_history_includes_previous_turns():
    provider = FakeProvider(reply="answer")
    controller, _, scheduler, _, _ = make_controller(provider)
    controller.submit("one")
    wait_idle(controller, scheduler)
    controller.submit("two")
    wait_idle(controller, scheduler)
    assert provider.requests[1].messages == [
        ChatMessage(role="user", content="one"),
        ChatMessage(role="assistant", content="answer"),
        ChatMessage(role="user", content="two"),
    ]


def test_log_stays_even_and_capped_across_turns():
    controller, store, scheduler, _, _ = make_controller(FakeProvider(), max_messages=200)
    for i in range(101):
        assert controller.submit(f"q{i}")
        wait_idle(controller, scheduler)
        assert len(store) % 2 == 0
    ids = [m.id for m in store.snapshot()]
    assert len(store) == 200
    assert ids[0] == 2
    assert ids[-1] == 201


def test_release_happens_after_error():
    class FailingProvider:
        name = "failing"

        def stream_fragments(self, req):
            raise ConnectionError("refused")
            yield  # pragma: no cover

    controller, store, scheduler, _, states = make_controller(FailingProvider())
    controller.submit("hi")
    wait_idle(controller, scheduler)
    assert store.find_mutable(1).content == "Error: refused"
    assert controller.submit("again") is True
    wait_idle(controller, scheduler)
    assert [s.active for s in states] == [True, False, True, False]


def test_reset_input_failure_keeps_turn_paired():
    store = ConversationLog()
    scheduler = QueuedScheduler()
    pipeline = TurnPipeline(FakeProvider(reply="fine"), store, scheduler, model="chat")

    def broken_reset():
        raise RuntimeError("entry widget destroyed")

    controller = TurnController(store, pipeline, reset_input=broken_reset)
    assert controller.submit("hi") is True
    assert len(store) == 2
    assert controller.state.active

    wait_idle(controller, scheduler)
    assert len(store) % 2 == 0
    assert [(m.role, m.content) for m in store.snapshot()] == [
        (Role.USER, "hi"),
        (Role.ASSISTANT, "fine"),
    ]


def test_redraw_failure_during_submit_keeps_log_even():
    controller, store, scheduler, _, _ = make_controller(FakeProvider(reply="ok"))
    calls = []

    def redraw_fails_once():
        calls.append(True)
        if len(calls) == 1:
            raise RuntimeError("redraw failed")

    store.subscribe(redraw_fails_once)
    assert controller.submit("first") is True
    wait_idle(controller, scheduler)
    assert controller.submit("second") is True
    wait_idle(controller, scheduler)

    assert len(store) == 4
    assert [m.role for m in store.snapshot()] == [Role.USER, Role.ASSISTANT] * 2
    assert store.find_mutable(1).content == "ok"
    assert store.find_mutable(3).content == "ok"


def test_state_listener_failure_still_releases():
    store = ConversationLog()
    scheduler = QueuedScheduler()
    pipeline = TurnPipeline(FakeProvider(), store, scheduler, model="chat")

    def broken_listener(state):
        raise RuntimeError("button is gone")

    controller = TurnController(store, pipeline, on_state_change=broken_listener)
    assert controller.submit("hi")
    wait_idle(controller, scheduler)
    assert controller.submit("again")
    wait_idle(controller, scheduler)
    assert len(store) == 4
