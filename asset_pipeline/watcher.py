from __future__ import annotations

import asyncio
import enum
import inspect
import logging
import os
import threading
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import PurePath
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .errors import WatcherSetupError


logger = logging.getLogger("asset_pipeline.watcher")

# Build output and tool directories; changes there must not trigger rebuilds
EXCLUDED_DIRS = frozenset(
    {"dist", "build", "output", ".git", "node_modules", "vendor", ".cache", "__pycache__"}
)
# Typical names of files written by the pipeline itself
GENERATED_PREFIXES = ("app.", "bundle.")

DEFAULT_DEBOUNCE = 0.3


class WatchOp(str, enum.Enum):
    CREATE = "create"
    WRITE = "write"
    REMOVE = "remove"
    RENAME = "rename"


@dataclass(frozen=True)
class WatchEvent:
    path: str
    op: WatchOp


WatchCallback = Callable[[WatchEvent], Union[None, Awaitable[Any]]]

_CLOSED = object()


class _EventBridge(FileSystemEventHandler):
    """Turns watchdog events (observer thread) into WatchEvents on the loop."""

    def __init__(self, watcher: "FileWatcher") -> None:
        super().__init__()
        self._watcher = watcher

    def _emit(self, event: FileSystemEvent, op: WatchOp, path: Optional[str] = None) -> None:
        if event.is_directory:
            return
        src = path if path is not None else event.src_path
        if isinstance(src, bytes):
            src = os.fsdecode(src)
        self._watcher.submit(WatchEvent(path=str(src), op=op))

    def on_created(self, event: FileSystemEvent) -> None:
        self._emit(event, WatchOp.CREATE)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._emit(event, WatchOp.WRITE)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._emit(event, WatchOp.REMOVE)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._emit(event, WatchOp.RENAME)
        # editors that save via rename show up as a new file at the destination
        self._emit(event, WatchOp.CREATE, path=getattr(event, "dest_path", None) or event.src_path)


class FileWatcher:
    """Watches files and directories and calls back after a quiet period.

    Bursts of qualifying events are coalesced by one trailing timer per
    watcher: every event restarts it, and when it fires only the latest event
    is delivered. Callbacks run in registration order; a failing callback is
    logged and does not stop the others.
    """

    def __init__(self, debounce: float = DEFAULT_DEBOUNCE, observer_factory: Callable[[], Any] = Observer) -> None:
        self._observer = observer_factory()
        self._bridge = _EventBridge(self)
        self._lock = threading.Lock()
        self._callbacks: List[WatchCallback] = []
        self._patterns: List[str] = []
        self._watched: Dict[str, Any] = {}
        self._debounce = float(debounce)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[WatchEvent] = None
        self._deliveries: Set[asyncio.Task] = set()
        self._closed = False

    # --- configuration -------------------------------------------------

    def add_path(self, path: Union[str, os.PathLike], recursive: bool = False) -> None:
        """Watch a file or directory; raises ``WatcherSetupError`` if it cannot be watched."""
        target = os.fspath(path)
        if not os.path.exists(target):
            raise WatcherSetupError(f"failed to watch {target}: no such file or directory")
        with self._lock:
            if target in self._watched:
                return
            try:
                self._watched[target] = self._observer.schedule(self._bridge, target, recursive=recursive)
            except OSError as exc:
                raise WatcherSetupError(f"failed to watch {target}: {exc}") from exc
        logger.debug("Watching: %s", target)

    def watch_directory(self, directory: Union[str, os.PathLike]) -> None:
        """Watch ``directory`` and every non-hidden directory below it."""
        root = os.fspath(directory)
        if not os.path.isdir(root):
            raise WatcherSetupError(f"failed to watch {root}: not a directory")
        for dirpath, dirnames, _ in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith(".") and d not in EXCLUDED_DIRS)
            self.add_path(dirpath)

    def add_pattern(self, pattern: str) -> None:
        with self._lock:
            self._patterns.append(pattern)

    def on_change(self, callback: WatchCallback) -> None:
        with self._lock:
            self._callbacks.append(callback)

    def set_debounce(self, seconds: float) -> None:
        with self._lock:
            self._debounce = max(float(seconds), 0.0)

    @property
    def debounce(self) -> float:
        with self._lock:
            return self._debounce

    def watched_paths(self) -> List[str]:
        with self._lock:
            return list(self._watched)

    # --- event flow ----------------------------------------------------

    def should_process(self, event: WatchEvent) -> bool:
        if event.op not in (WatchOp.CREATE, WatchOp.WRITE):
            return False
        path = os.path.normpath(event.path)
        if any(part in EXCLUDED_DIRS for part in PurePath(path).parts):
            return False
        base = os.path.basename(path)
        if base.startswith(GENERATED_PREFIXES):
            return False
        with self._lock:
            patterns = list(self._patterns)
        if not patterns:
            return True
        return any(fnmatchcase(base, pattern) for pattern in patterns)

    def submit(self, event: WatchEvent) -> None:
        """Hand an event over from any thread."""
        loop, queue = self._loop, self._queue
        if loop is None or queue is None or self._closed:
            return
        try:
            loop.call_soon_threadsafe(queue.put_nowait, event)
        except RuntimeError:
            # loop already closed
            pass

    def handle_event(self, event: WatchEvent) -> bool:
        """Filter and debounce one event. Must run on the event loop.

        Returns whether the event restarted the debounce timer.
        """
        if not self.should_process(event):
            return False
        loop = asyncio.get_running_loop()
        self._pending = event
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.debounce, self._fire)
        return True

    def _fire(self) -> None:
        event, self._pending, self._timer = self._pending, None, None
        if event is None:
            return
        task = asyncio.get_running_loop().create_task(self.process_event(event))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def process_event(self, event: WatchEvent) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
        logger.info("File changed: %s", event.path, extra={"event_path": event.path})
        for callback in callbacks:
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Watch callback error: %s", exc, exc_info=True, extra={"event_path": event.path})

    # --- lifecycle -----------------------------------------------------

    async def start(self) -> None:
        """Run until cancelled or ``close()`` is called."""
        if self._closed:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        if not self._observer.is_alive():
            self._observer.start()
        try:
            while True:
                item = await self._queue.get()
                if item is _CLOSED:
                    return
                self.handle_event(item)
        finally:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending = None
            for task in list(self._deliveries):
                task.cancel()

    def close(self) -> None:
        """Tell the observer thread and ``start()`` to stop. Safe to call twice.

        Does not wait for the observer thread; use ``aclose()`` on the loop.
        """
        if self._closed:
            return
        self._closed = True
        if self._observer.is_alive():
            self._observer.stop()
        loop, queue = self._loop, self._queue
        if loop is not None and queue is not None and not loop.is_closed():
            loop.call_soon_threadsafe(queue.put_nowait, _CLOSED)

    async def aclose(self, timeout: float = 5.0) -> None:
        """``close()`` and wait for the observer thread off the event loop."""
        self.close()
        if self._observer.is_alive():
            await asyncio.to_thread(self._observer.join, timeout)
