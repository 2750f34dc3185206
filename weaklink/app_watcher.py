# backend/weaklink/app_watcher.py
"""
Device-side break detection.

AppWatcher polls a foreground-app probe on a fixed cadence while the host
app is in the foreground, and records a break the first time a tracked app
shows up. It stays quiet while that same app keeps being reported: a new
break needs a different tracked app to be opened in between.

    IDLE --enable()--> POLLING <--host foreground/background--> SUSPENDED
      ^                   |                                        |
      +---- disable() / watch-list becomes empty ------------------+

Delivery is at-most-once. A failed append is retried once inside the same
tick and then dropped; nothing is queued for replay.
"""
import enum
import logging
import threading
import time
from concurrent.futures import CancelledError, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .errors import ProbeUnavailable
from .probes import UNKNOWN_APP, Probe
from .session import Session
from .watchlist import WatchListResolver, display_name, identifiers

logger = logging.getLogger(__name__)

PERMISSION_MESSAGE = (
    "Usage access permission required: grant it in system settings so "
    "Weak Link can see which app is open."
)


class WatcherState(enum.Enum):
    IDLE = "idle"
    POLLING = "polling"
    SUSPENDED = "suspended"


class TickOutcome(enum.Enum):
    INACTIVE = "inactive"            # not POLLING
    BUSY = "busy"                    # previous tick or call still running
    WATCHLIST_EMPTY = "watchlist_empty"
    PROBE_FAILED = "probe_failed"
    PROBE_TIMEOUT = "probe_timeout"
    UNKNOWN = "unknown"
    NOT_TRACKED = "not_tracked"
    REPEAT = "repeat"
    EMITTED = "emitted"
    DROPPED = "dropped"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BreakDraft:
    user_id: int
    group_id: int
    app_identifier: str
    app_name: str
    observed_at: datetime


# sink(session, draft) -> event id; raises on failure
EventSink = Callable[[Session, BreakDraft], int]


@dataclass(frozen=True)
class WatcherSettings:
    interval: float = 5.0
    probe_timeout: float = 3.0
    store_timeout: float = 5.0
    write_retries: int = 1

    @classmethod
    def from_config(cls, config) -> "WatcherSettings":
        get = config.get if isinstance(config, dict) else lambda k, d: getattr(config, k, d)
        return cls(
            interval=float(get("POLL_INTERVAL_SECONDS", cls.interval)),
            probe_timeout=float(get("PROBE_TIMEOUT_SECONDS", cls.probe_timeout)),
            store_timeout=float(get("STORE_TIMEOUT_SECONDS", cls.store_timeout)),
            write_retries=int(get("STORE_WRITE_RETRIES", cls.write_retries)),
        )


class _Cancelled(Exception):
    pass


class AppWatcher:
    def __init__(
        self,
        session: Session,
        group_id: int,
        probe: Probe,
        resolver: WatchListResolver,
        sink: EventSink,
        settings: Optional[WatcherSettings] = None,
        wall_clock: Callable[[], datetime] = datetime.utcnow,
        monotonic: Callable[[], float] = time.monotonic,
        on_event: Optional[Callable[[BreakDraft, int], None]] = None,
        host_active: bool = True,
    ):
        self.session = session
        self.group_id = group_id
        self.settings = settings or WatcherSettings()

        self._probe = probe
        self._resolver = resolver
        self._sink = sink
        self._wall_clock = wall_clock
        self._monotonic = monotonic
        self._on_event = on_event

        self._state_lock = threading.Lock()
        self._tick_lock = threading.Lock()
        self._state = WatcherState.IDLE
        self._host_active = host_active
        self._generation = 0

        self._executor: Optional[ThreadPoolExecutor] = None
        self._inflight = None

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._prev = UNKNOWN_APP
        self.current_app = UNKNOWN_APP
        self.last_error: Optional[str] = None
        self.setup_message: Optional[str] = None
        self.events_emitted = 0
        self.events_dropped = 0

    # ------------------------------
    # State
    # ------------------------------
    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def last_emitted_app(self) -> str:
        return self._prev

    def enable(self) -> WatcherState:
        watch_list = self._resolver.resolve(self.group_id)
        with self._state_lock:
            self._generation += 1
            self._prev = UNKNOWN_APP
            self.setup_message = None
            self._reset_executor()
            if not watch_list:
                self._state = WatcherState.IDLE
                logger.info("watcher idle: no tracked apps for group_id=%s", self.group_id)
            elif self._host_active:
                self._state = WatcherState.POLLING
            else:
                self._state = WatcherState.SUSPENDED
            state = self._state
        logger.info(
            "watcher enabled user_id=%s group_id=%s apps=%d state=%s",
            self.session.user_id, self.group_id, len(watch_list), state.value,
        )
        return state

    def disable(self) -> None:
        with self._state_lock:
            self._generation += 1
            self._state = WatcherState.IDLE
            self._shutdown_executor()
        self._stop_event.set()
        logger.info("watcher disabled user_id=%s group_id=%s", self.session.user_id, self.group_id)

    def set_host_active(self, active: bool) -> WatcherState:
        with self._state_lock:
            self._host_active = active
            if active and self._state is WatcherState.SUSPENDED:
                self._state = WatcherState.POLLING
            elif not active and self._state is WatcherState.POLLING:
                self._state = WatcherState.SUSPENDED
            return self._state

    def _go_idle(self, reason: str) -> None:
        with self._state_lock:
            self._generation += 1
            self._state = WatcherState.IDLE
            self._shutdown_executor()
        self._stop_event.set()
        logger.info("watcher idle group_id=%s: %s", self.group_id, reason)

    def _is_current(self, generation: int) -> bool:
        return self._generation == generation and self._state is WatcherState.POLLING

    # ------------------------------
    # Executor for bounded probe / append calls
    # ------------------------------
    def _reset_executor(self) -> None:
        self._shutdown_executor()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="weaklink-watch")

    def _shutdown_executor(self) -> None:
        if self._executor is not None:
            # a hung probe must not block disable()
            self._executor.shutdown(wait=False, cancel_futures=True)
        self._executor = None
        self._inflight = None

    def _call(self, timeout: float, fn, *args):
        executor = self._executor
        if executor is None:
            raise _Cancelled()
        try:
            future = executor.submit(fn, *args)
        except RuntimeError as e:
            raise _Cancelled() from e
        self._inflight = future
        try:
            return future.result(timeout=timeout)
        except CancelledError as e:
            raise _Cancelled() from e

    # ------------------------------
    # Tick
    # ------------------------------
    def tick(self) -> TickOutcome:
        if not self._tick_lock.acquire(blocking=False):
            return TickOutcome.BUSY
        try:
            return self._tick()
        except _Cancelled:
            return TickOutcome.CANCELLED
        finally:
            self._tick_lock.release()

    def _tick(self) -> TickOutcome:
        with self._state_lock:
            if self._state is not WatcherState.POLLING:
                return TickOutcome.INACTIVE
            generation = self._generation

        inflight = self._inflight
        if inflight is not None and not inflight.done():
            logger.debug("previous probe/append still running, skipping tick")
            return TickOutcome.BUSY

        # one snapshot per tick; refetches land on the next tick
        watch_list = self._resolver.resolve(self.group_id)
        if not watch_list:
            self._go_idle("watch-list empty")
            return TickOutcome.WATCHLIST_EMPTY

        try:
            app = self._call(self.settings.probe_timeout, self._probe)
        except FutureTimeout:
            logger.warning("probe timed out after %.1fs", self.settings.probe_timeout)
            return TickOutcome.PROBE_TIMEOUT
        except ProbeUnavailable as e:
            self._note_probe_unavailable(e)
            return TickOutcome.PROBE_FAILED
        except _Cancelled:
            raise
        except Exception as e:
            logger.warning("probe failed: %s", e)
            return TickOutcome.PROBE_FAILED

        if not self._is_current(generation):
            return TickOutcome.CANCELLED

        app = app or UNKNOWN_APP
        self.current_app = app
        if app == UNKNOWN_APP:
            return TickOutcome.UNKNOWN
        if app not in identifiers(watch_list):
            return TickOutcome.NOT_TRACKED
        if app == self._prev:
            return TickOutcome.REPEAT

        self._prev = app
        draft = BreakDraft(
            user_id=self.session.user_id,
            group_id=self.group_id,
            app_identifier=app,
            app_name=display_name(watch_list, app),
            observed_at=self._wall_clock(),
        )
        return self._append(draft, generation)

    def _append(self, draft: BreakDraft, generation: int) -> TickOutcome:
        attempts = 1 + max(0, self.settings.write_retries)
        for attempt in range(1, attempts + 1):
            if not self._is_current(generation):
                return TickOutcome.CANCELLED
            try:
                event_id = self._call(self.settings.store_timeout, self._sink, self.session, draft)
            except FutureTimeout:
                self.last_error = f"store append timed out after {self.settings.store_timeout:.1f}s"
                logger.warning(self.last_error)
                break
            except _Cancelled:
                raise
            except Exception as e:
                self.last_error = f"store append failed: {e}"
                logger.warning(
                    "append failed app=%s attempt %d/%d: %s",
                    draft.app_identifier, attempt, attempts, e,
                )
                continue

            self.events_emitted += 1
            logger.info(
                "break emitted user_id=%s group_id=%s app=%s event_id=%s",
                draft.user_id, draft.group_id, draft.app_identifier, event_id,
            )
            if self._on_event is not None:
                try:
                    self._on_event(draft, event_id)
                except Exception:
                    logger.exception("on_event callback failed")
            return TickOutcome.EMITTED

        self.events_dropped += 1
        logger.warning(
            "break dropped user_id=%s group_id=%s app=%s (at-most-once delivery)",
            draft.user_id, draft.group_id, draft.app_identifier,
        )
        return TickOutcome.DROPPED

    def _note_probe_unavailable(self, error: Exception) -> None:
        if self.setup_message is None:
            self.setup_message = PERMISSION_MESSAGE
            logger.warning("foreground-app probe unavailable: %s", error)
        else:
            logger.debug("foreground-app probe unavailable: %s", error)

    # ------------------------------
    # Timer driver
    # ------------------------------
    def start(self) -> WatcherState:
        state = self.enable()
        if self._thread is not None and self._thread.is_alive():
            return state
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="weaklink-watcher", daemon=True)
        self._thread.start()
        return state

    def stop(self, join_timeout: float = 2.0) -> None:
        self.disable()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=join_timeout)
        self._thread = None

    def _run_loop(self) -> None:
        interval = max(0.01, self.settings.interval)
        next_deadline = self._monotonic()
        while not self._stop_event.is_set():
            now = self._monotonic()
            if now >= next_deadline:
                self.tick()
                now = self._monotonic()
                # deadlines that passed during a slow tick are skipped
                missed = int((now - next_deadline) // interval) + 1
                next_deadline += missed * interval
            self._stop_event.wait(max(0.0, next_deadline - now))
