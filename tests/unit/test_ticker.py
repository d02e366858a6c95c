"""
Unit tests for the Ticker: message ordering, fast/slow passes and
background results.
"""

import threading
import time

import pytest

from asmgr.agents import AgentCommand
from asmgr.app_context import AppContext
from asmgr.exceptions import AsmgrError
from asmgr.models import Activity, Instance, Status
from asmgr.settings import TickSettings
from asmgr.ticker import MAX_ERRORS, Ticker


@pytest.fixture
def ctx(storage, tmux_manager):
    context = AppContext(storage=storage, tmux_manager=tmux_manager).open(None)
    yield context
    context.close()


@pytest.fixture
def ticker(ctx):
    t = Ticker(ctx, TickSettings(tick_ms=10, slow_multiplier=3, capture_lines=20, preview_lines=100))
    yield t
    t.stop()


def add_running(ctx, instance_id, content=""):
    inst = Instance(id=instance_id, name=instance_id.lower(), path="/work")
    ctx.sessions.add_instance(inst)
    ctx.tmux.ensure_session(inst.session_name, "/work", AgentCommand(), window_name="terminal")
    ctx.tmux.tmux.set_pane_content(inst.session_name, 0, content)
    return inst


def wait_for_inbox(ticker, timeout=2.0):
    deadline = time.monotonic() + timeout
    while ticker.inbox.empty() and time.monotonic() < deadline:
        time.sleep(0.01)


class TestMessages:
    """Tests for post / process_messages"""

    def test_fifo(self, ticker):
        seen = []
        ticker.post(seen.append, 1)
        ticker.post(seen.append, 2)
        ticker.post(seen.append, 3)

        assert ticker.process_messages() == 3
        assert seen == [1, 2, 3]

    def test_mutation_visible_to_next_tick(self, ticker, ctx):
        inst = add_running(ctx, "A")
        ticker.select(inst.id)
        assert ticker.tick().status["A"] == Status.RUNNING

        ticker.post(ctx.launcher.stop, inst)
        view = ticker.tick()

        assert view.status["A"] == Status.STOPPED
        assert view.preview == ""

    def test_errors_are_recorded_not_raised(self, ticker):
        def boom():
            raise AsmgrError("tmux went away")

        ticker.post(boom)
        view = ticker.tick()

        assert view.errors == ["tmux went away"]

    def test_error_list_is_bounded(self, ticker):
        def fail(n):
            raise AsmgrError(str(n))

        for i in range(MAX_ERRORS + 5):
            ticker.post(fail, i)

        ticker.process_messages()

        assert len(ticker.errors) == MAX_ERRORS
        assert ticker.errors[-1] == str(MAX_ERRORS + 4)


class TestTicking:
    """Tests for the fast/slow schedule"""

    def test_selected_reconciled_every_tick(self, ticker, ctx):
        a = add_running(ctx, "A", "a says hi")
        add_running(ctx, "B", "b says hi")
        ticker.select(a.id)
        captures = ctx.tmux.tmux.captures

        ticker.tick()
        ticker.tick()

        assert [c[0] for c in captures] == [a.session_name, a.session_name]
        assert captures[0][2] == 100

    def test_slow_tick_reconciles_everyone(self, ticker, ctx):
        a = add_running(ctx, "A")
        b = add_running(ctx, "B")
        ticker.select(a.id)

        for _ in range(3):
            ticker.tick()

        sessions = [c[0] for c in ctx.tmux.tmux.captures]
        assert sessions.count(a.session_name) == 3
        assert sessions.count(b.session_name) == 1

    def test_one_list_windows_per_instance_per_tick(self, ticker, ctx):
        add_running(ctx, "A")
        add_running(ctx, "B")
        calls = ctx.tmux.tmux.list_window_calls
        calls.clear()

        ticker.count = 2
        ticker.tick()

        assert sorted(calls) == ["asmgr-A", "asmgr-B"]

    def test_preview_follows_selection(self, ticker, ctx):
        a = add_running(ctx, "A", "line one\nline two")
        ticker.select(a.id)

        view = ticker.tick()

        assert view.selection == "A"
        assert view.preview == "line one\nline two"
        assert view.activity["A"] == Activity.IDLE

        ticker.select(None)
        assert ticker.tick().preview == ""

    def test_view_in_display_order(self, ticker, ctx):
        add_running(ctx, "B")
        add_running(ctx, "A")

        view = ticker.tick()

        assert [i.id for i in view.instances] == ["B", "A"]
        assert view.tick == 1

    def test_view_is_detached_from_catalog(self, ticker, ctx):
        inst = add_running(ctx, "A")
        ctx.sessions.add_group("Backend")

        view = ticker.tick()
        view.instances[0].name = "renamed"
        view.instances[0].status = Status.STOPPED
        view.groups[0].name = "renamed"

        assert view.instances[0] is not inst
        assert inst.name == "a"
        assert inst.status == Status.RUNNING
        assert ctx.sessions.list_groups()[0].name == "Backend"

    def test_run_stops_after_max_ticks(self, ticker):
        views = []

        ticker.run(on_tick=views.append, max_ticks=3)

        assert [v.tick for v in views] == [1, 2, 3]


class TestBackground:
    """Tests for background work"""

    def test_result_delivered_on_tick_thread(self, ticker):
        results = []
        ticker.run_in_background(lambda x: x * 2, 21, on_done=results.append)
        wait_for_inbox(ticker)

        ticker.process_messages()

        assert results == [42]

    def test_stale_result_dropped(self, ticker, ctx):
        a = add_running(ctx, "A")
        release = threading.Event()
        results = []

        def slow():
            release.wait(2.0)
            return "candidates"

        ticker.run_in_background(slow, on_done=results.append)
        ticker.select(a.id)
        ticker.process_messages()
        release.set()
        wait_for_inbox(ticker)
        ticker.process_messages()

        assert results == []

    def test_resume_candidates_request(self, ticker, ctx, monkeypatch):
        inst = add_running(ctx, "A")
        monkeypatch.setattr("asmgr.ticker.list_resume_candidates", lambda kind, path: ["c1"])
        results = []

        ticker.request_resume_candidates(inst, on_done=results.append)
        wait_for_inbox(ticker)
        ticker.process_messages()

        assert results == [["c1"]]

    def test_background_failure_recorded(self, ticker):
        def fail():
            raise AsmgrError("scan failed")

        ticker.run_in_background(fail, on_done=lambda r: None)
        wait_for_inbox(ticker)
        ticker.process_messages()

        assert ticker.errors == ["scan failed"]
