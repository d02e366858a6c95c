"""
Periodic driver for reconciliation.

All domain mutations happen on the thread that calls tick(): intents
posted from elsewhere are queued and applied FIFO at the start of the next
tick, and background work (transcript scans and the like) runs on a small
thread pool whose results come back through the same queue. A result that
was started for an older selection is dropped.

Each tick reconciles the selected instance; every `slow_multiplier`-th tick
also reconciles everything else, in display order.
"""

import copy
import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .app_context import AppContext
from .exceptions import AsmgrError
from .logging_config import get_logger
from .models import Activity, Group, Instance, Status
from .settings import TickSettings
from .transcripts import ResumeCandidate, list_resume_candidates

logger = get_logger("ticker")

MAX_ERRORS = 20


@dataclass
class ViewModel:
    """Read-only snapshot handed to the front end after each tick."""

    instances: List[Instance] = field(default_factory=list)
    groups: List[Group] = field(default_factory=list)
    selection: Optional[str] = None
    preview: str = ""
    activity: Dict[str, Activity] = field(default_factory=dict)
    status: Dict[str, Status] = field(default_factory=dict)
    tick: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class _Intent:
    fn: Callable[..., Any]
    args: tuple = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)


@dataclass
class _BackgroundResult:
    generation: int
    future: Future
    on_done: Callable[[Any], None]


class Ticker:
    """Single-threaded tick loop over the active project."""

    def __init__(self, ctx: AppContext, settings: Optional[TickSettings] = None, max_workers: int = 2):
        self.ctx = ctx
        self.settings = settings or ctx.tick_settings
        self.inbox: "queue.Queue" = queue.Queue()
        self.count = 0
        self.selected_id: Optional[str] = None
        self.view = ViewModel()
        self.errors: List[str] = []
        self._generation = 0
        self._preview = ""
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="asmgr-bg")
        self._stop = threading.Event()

    @property
    def period(self) -> float:
        return self.settings.tick_ms / 1000.0

    # -- messages ------------------------------------------------------

    def post(self, fn: Callable[..., Any], *args, **kwargs) -> None:
        """Queue an intent; it runs on the tick thread, in order."""
        self.inbox.put(_Intent(fn, args, kwargs))

    def select(self, instance_id: Optional[str]) -> None:
        self.post(self._set_selection, instance_id)

    def _set_selection(self, instance_id: Optional[str]) -> None:
        if instance_id != self.selected_id:
            self.selected_id = instance_id
            self._generation += 1
            self._preview = ""

    def run_in_background(self, fn: Callable[..., Any], *args,
                          on_done: Callable[[Any], None]) -> None:
        """Run fn off-thread; on_done gets its result on the tick thread.

        The result is discarded if the selection changed in the meantime.
        """
        generation = self._generation
        future = self._executor.submit(fn, *args)
        future.add_done_callback(
            lambda f: self.inbox.put(_BackgroundResult(generation, f, on_done))
        )

    def request_resume_candidates(self, instance: Instance,
                                  on_done: Callable[[List[ResumeCandidate]], None]) -> None:
        self.run_in_background(list_resume_candidates, instance.agent, instance.path, on_done=on_done)

    def _record_error(self, error: Exception) -> None:
        self.errors.append(str(error))
        del self.errors[:-MAX_ERRORS]

    def process_messages(self) -> int:
        """Apply everything queued so far, FIFO.

        Returns:
            Number of messages handled (stale results included)
        """
        handled = 0
        while True:
            try:
                message = self.inbox.get_nowait()
            except queue.Empty:
                return handled
            handled += 1
            try:
                if isinstance(message, _BackgroundResult):
                    if message.generation != self._generation:
                        logger.debug("Dropping stale background result")
                        continue
                    message.on_done(message.future.result())
                else:
                    message.fn(*message.args, **message.kwargs)
            except AsmgrError as e:
                logger.warning("Intent failed: %s", e)
                self._record_error(e)
            except Exception as e:
                logger.exception("Unexpected error handling message")
                self._record_error(e)

    # -- ticking -------------------------------------------------------

    def tick(self) -> ViewModel:
        """One pass: drain messages, reconcile, rebuild the view model."""
        self.process_messages()
        self.count += 1
        slow = self.count % max(1, self.settings.slow_multiplier) == 0

        sessions = self.ctx.sessions
        reconciler = self.ctx.reconciler
        for inst in sessions.display_order():
            selected = inst.id == self.selected_id
            if not (selected or slow):
                continue
            try:
                if selected:
                    result = reconciler.reconcile(inst, lines=self.settings.preview_lines)
                    if result.content is not None:
                        self._preview = result.content
                    elif result.status == Status.STOPPED:
                        self._preview = ""
                else:
                    reconciler.reconcile(inst)
            except AsmgrError as e:
                logger.debug("Reconcile of %s failed: %s", inst.id, e)

        self.view = self._build_view()
        return self.view

    def _build_view(self) -> ViewModel:
        # Detached copies; changes go through post()
        instances = copy.deepcopy(self.ctx.sessions.display_order())
        return ViewModel(
            instances=instances,
            groups=copy.deepcopy(self.ctx.sessions.list_groups()),
            selection=self.selected_id,
            preview=self._preview,
            activity={inst.id: inst.activity for inst in instances},
            status={inst.id: inst.status for inst in instances},
            tick=self.count,
            errors=list(self.errors),
        )

    def run(self, on_tick: Optional[Callable[[ViewModel], None]] = None,
            max_ticks: Optional[int] = None) -> None:
        """Tick every period until stop() is called (or max_ticks ran)."""
        ticks = 0
        while not self._stop.is_set():
            started = time.monotonic()
            view = self.tick()
            if on_tick is not None:
                on_tick(view)
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            remaining = self.period - (time.monotonic() - started)
            if remaining > 0:
                self._stop.wait(remaining)

    def stop(self) -> None:
        self._stop.set()
        self._executor.shutdown(wait=False)
