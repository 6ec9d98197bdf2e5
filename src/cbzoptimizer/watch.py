"""Watch a folder and optimize archives as they are written or moved in.

Three threads run while watching: a pump feeding filesystem events into a
queue, a single consumer converting one file at a time, and an error
consumer logging failures. Conversion is strictly serial, so a slow chapter
delays the events queued behind it.
"""

import enum
import logging
import os
import queue
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Tuple

from . import archive
from .config import DEFAULT_QUALITY, WATCH_POLL_INTERVAL
from .context import ConversionContext
from .converter import Converter
from .errors import CBZOptimizerError, FileProcessingError, PathValidationError
from .pipeline import ChapterPipeline

logger = logging.getLogger(__name__)

# inotify is the only backend that reports close-after-write
WATCH_SUPPORTED = sys.platform.startswith("linux")

CLOSE_WRITE = "close_write"
MOVE = "move"
HANDLED_EVENTS = (CLOSE_WRITE, MOVE)


@dataclass(frozen=True)
class FileEvent:
    path: str
    kinds: Tuple[str, ...]


class Watcher(Protocol):
    def watch(self, path: Path, events: queue.Queue, errors: queue.Queue,
              ctx: ConversionContext) -> None:
        """Push FileEvents for ``path`` into ``events`` until ``ctx`` is done"""


def file_event_from_inotify(raw) -> Optional[FileEvent]:
    """Map a raw inotify event (or a paired ``(from, to)`` move) to a FileEvent.

    Only close-after-write and moved-to are kept. Watchdog's observer turns a
    file moved in from outside the tree into a plain "created" event, which
    also fires for files still being written, so the raw flags are used.
    """
    if isinstance(raw, tuple):
        raw = raw[1]
    if raw.is_directory:
        return None
    kinds = []
    if raw.is_close_write:
        kinds.append(CLOSE_WRITE)
    if raw.is_moved_to:
        kinds.append(MOVE)
    if not kinds:
        return None
    return FileEvent(os.fsdecode(raw.src_path), tuple(kinds))


class InotifyWatcher:
    """Recursive close-write/move watcher on top of watchdog's inotify buffer"""

    def __init__(self, poll_interval: float = WATCH_POLL_INTERVAL):
        self.poll_interval = poll_interval
        self.ready = threading.Event()

    def watch(self, path, events, errors, ctx):
        # inotify bindings load libc symbols at import, Linux only
        from watchdog.observers.inotify_buffer import InotifyBuffer

        buffer = InotifyBuffer(os.fsencode(str(path)), recursive=True)
        reader = threading.Thread(target=self._read, args=(buffer, events, errors),
                                  name="watch-inotify", daemon=True)
        reader.start()
        self.ready.set()
        logger.info("Watching %s for new archives", path)
        try:
            while not ctx.wait(self.poll_interval):
                if not reader.is_alive():
                    errors.put(CBZOptimizerError(f"Watcher for {path} stopped unexpectedly"))
                    break
        finally:
            self.ready.clear()
            buffer.close()
            reader.join()

    def _read(self, buffer, events, errors):
        try:
            while True:
                raw = buffer.read_event()
                if raw is None:
                    return
                event = file_event_from_inotify(raw)
                if event is not None:
                    events.put(event)
        except Exception as e:
            errors.put(CBZOptimizerError(f"Reading inotify events failed: {e}"))


class WatchState(enum.Enum):
    IDLE = "idle"
    WATCHING = "watching"
    SHUTTING_DOWN = "shutting_down"


class WatchLoop:
    def __init__(self, converter: Converter, path, quality: int = DEFAULT_QUALITY,
                 override: bool = False, watcher: Watcher = None,
                 poll_interval: float = WATCH_POLL_INTERVAL):
        self.converter = converter
        self.path = Path(path)
        self.pipeline = ChapterPipeline(converter, quality=quality, override=override)
        self.watcher = watcher or InotifyWatcher(poll_interval)
        self.poll_interval = poll_interval
        self.error_count = 0
        self._state = WatchState.IDLE
        self._state_lock = threading.Lock()

    @property
    def state(self) -> WatchState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: WatchState):
        with self._state_lock:
            logger.debug("Watch loop %s -> %s", self._state.value, state.value)
            self._state = state

    def run(self, ctx: ConversionContext) -> None:
        """Watch until ``ctx`` is cancelled; blocks the calling thread"""
        if self.state is not WatchState.IDLE:
            raise RuntimeError("Watch loop is already running")
        if not self.path.is_dir():
            raise PathValidationError(f"The path needs to be a folder: {self.path}")

        self.converter.prepare_converter()

        events: queue.Queue = queue.Queue()
        errors: queue.Queue = queue.Queue()
        stop = ctx.child()
        errors_done = threading.Event()

        self._set_state(WatchState.WATCHING)
        workers = [
            threading.Thread(target=self._pump, args=(events, errors, stop),
                             name="watch-pump", daemon=True),
            threading.Thread(target=self._consume_events, args=(events, errors, stop),
                             name="watch-events", daemon=True),
        ]
        error_consumer = threading.Thread(target=self._consume_errors,
                                          args=(errors, errors_done),
                                          name="watch-errors", daemon=True)
        for thread in workers + [error_consumer]:
            thread.start()

        try:
            stop.wait()
        finally:
            self._set_state(WatchState.SHUTTING_DOWN)
            stop.cancel()
            for thread in workers:
                thread.join()
            # Errors raised while the other threads wound down still get logged.
            errors_done.set()
            error_consumer.join()
            self._set_state(WatchState.IDLE)
            logger.info("Stopped watching %s", self.path)

    def _pump(self, events, errors, stop):
        try:
            self.watcher.watch(self.path, events, errors, stop)
        except Exception as e:
            errors.put(CBZOptimizerError(f"Watcher failed: {e}"))

    def _consume_events(self, events, errors, stop):
        while not stop.done:
            try:
                event = events.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            self.handle_event(event, errors)

    def handle_event(self, event: FileEvent, errors: queue.Queue) -> None:
        logger.info("[Event] %s, %s", event.path, ", ".join(event.kinds))
        if not archive.is_archive(event.path):
            return

        for kind in event.kinds:
            if kind not in HANDLED_EVENTS:
                continue
            try:
                self.pipeline.optimize(event.path)
            except Exception as e:
                errors.put(FileProcessingError(event.path, e))

    def _consume_errors(self, errors, errors_done):
        while True:
            try:
                err = errors.get(timeout=self.poll_interval)
            except queue.Empty:
                if errors_done.is_set():
                    return
                continue
            self.error_count += 1
            logger.error("Error: %s", err)
