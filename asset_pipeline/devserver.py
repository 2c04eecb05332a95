from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from typing import AsyncIterator, Dict, Optional, Sequence, Tuple

from starlette.requests import Request
from starlette.responses import StreamingResponse

from core.metrics import observe_reload, set_sse_clients

from .errors import DevServerStateError, PipelineError, WatcherSetupError
from .pipeline import Pipeline
from .watcher import FileWatcher, WatchEvent


logger = logging.getLogger("asset_pipeline.devserver")

DEFAULT_RELOAD_PATH = "/_assets/reload"
DEFAULT_PATTERNS = ("*.py", "*.html", "*.css", "*.js", "*.ts")
SUBSCRIBER_BUFFER = 10

RELOAD = "reload"
CONNECTED = "connected"

_CLOSED = None

_HOT_RELOAD_SCRIPT = """<script>
(function() {
  const es = new EventSource('%s');

  es.onmessage = function(event) {
    if (event.data === 'reload') {
      console.log('[assets] Reloading page...');
      location.reload();
    }
  };

  es.onerror = function() {
    console.log('[assets] Hot reload disconnected, retrying...');
    setTimeout(() => location.reload(), 1000);
  };
})();
</script>"""


def sse_frame(message: str) -> str:
    return f"data: {message}\n\n"


class DevServer:
    """Rebuilds assets on source changes and tells browsers to reload.

    Browsers subscribe through ``sse_endpoint``. A rebuild that starts while
    another one is running is dropped rather than queued; the next change
    triggers the next build. Failed builds are logged and send no reload.
    """

    def __init__(
        self,
        pipeline: Pipeline,
        watcher: Optional[FileWatcher] = None,
        *,
        reload_path: str = DEFAULT_RELOAD_PATH,
        watch_paths: Sequence[str] = (".",),
        patterns: Sequence[str] = DEFAULT_PATTERNS,
        debounce: float = 0.5,
    ) -> None:
        self.pipeline = pipeline
        self.watcher = watcher or FileWatcher(debounce=debounce)
        self.reload_path = reload_path
        self.watch_paths = list(watch_paths)
        self.patterns = list(patterns)
        self.debounce = debounce
        self._subscribers: Dict[str, asyncio.Queue] = {}
        self._subscribers_lock = threading.Lock()
        self._building = False
        self._build_lock = threading.Lock()
        self._watch_task: Optional[asyncio.Task] = None
        self._closed = False

    # --- lifecycle -----------------------------------------------------

    async def start(self) -> None:
        """Configure the watcher and run it in a background task."""
        if self._closed:
            raise DevServerStateError("dev server is closed")
        if self._watch_task is not None:
            raise DevServerStateError("dev server already running")

        self.watcher.set_debounce(self.debounce)
        for pattern in self.patterns:
            self.watcher.add_pattern(pattern)
        self.watcher.on_change(self.on_file_change)

        for path in self.watch_paths:
            try:
                self.watcher.add_path(path)
            except WatcherSetupError as exc:
                logger.warning("Could not watch %s: %s", path, exc)

        self._watch_task = asyncio.get_running_loop().create_task(self._run_watcher())
        logger.info("Hot reload enabled, watching %s for %s", ", ".join(self.watch_paths), ", ".join(self.patterns))

    async def _run_watcher(self) -> None:
        try:
            await self.watcher.start()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Watcher stopped with an error")

    @property
    def running(self) -> bool:
        return self._watch_task is not None and not self._watch_task.done()

    async def close(self) -> None:
        """Disconnect every subscriber and stop watching."""
        self._closed = True
        with self._subscribers_lock:
            queues = list(self._subscribers.values())
            self._subscribers.clear()
        for queue in queues:
            _close_queue(queue)
        set_sse_clients(0)

        await self.watcher.aclose()
        task, self._watch_task = self._watch_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # --- rebuilds ------------------------------------------------------

    @property
    def building(self) -> bool:
        with self._build_lock:
            return self._building

    async def on_file_change(self, event: WatchEvent) -> bool:
        """Rebuild for ``event``; returns True when a reload was broadcast."""
        with self._build_lock:
            if self._building:
                logger.debug("Build in progress, ignoring change to %s", event.path)
                return False
            self._building = True
        try:
            logger.info("Rebuilding due to: %s", event.path, extra={"event_path": event.path})
            try:
                await self.pipeline.build()
            except PipelineError as exc:
                logger.error("Build failed: %s", exc, extra={"event_path": event.path})
                return False
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Build failed unexpectedly")
                return False
        finally:
            with self._build_lock:
                self._building = False

        delivered = self.broadcast(RELOAD)
        observe_reload()
        logger.info("Build successful, reloading %d browser(s)", delivered)
        return True

    # --- subscribers ---------------------------------------------------

    def subscribe(self) -> Tuple[str, asyncio.Queue]:
        token = uuid.uuid4().hex
        queue: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_BUFFER)
        with self._subscribers_lock:
            if self._closed:
                _close_queue(queue)
            else:
                self._subscribers[token] = queue
            count = len(self._subscribers)
        set_sse_clients(count)
        return token, queue

    def unsubscribe(self, token: str) -> None:
        with self._subscribers_lock:
            queue = self._subscribers.pop(token, None)
            count = len(self._subscribers)
        if queue is not None:
            _close_queue(queue)
        set_sse_clients(count)

    def broadcast(self, message: str) -> int:
        """Queue ``message`` for every subscriber without blocking.

        Subscribers whose buffer is full miss this message. Returns how many
        subscribers received it.
        """
        with self._subscribers_lock:
            queues = list(self._subscribers.values())
        delivered = 0
        for queue in queues:
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                pass
        return delivered

    def client_count(self) -> int:
        with self._subscribers_lock:
            return len(self._subscribers)

    async def stream(self, token: str, queue: asyncio.Queue) -> AsyncIterator[str]:
        """SSE frames for one subscriber; unsubscribes when the stream ends."""
        try:
            yield sse_frame(CONNECTED)
            while True:
                message = await queue.get()
                if message is _CLOSED:
                    return
                yield sse_frame(message)
        finally:
            self.unsubscribe(token)

    async def sse_endpoint(self, request: Request) -> StreamingResponse:
        token, queue = self.subscribe()
        logger.debug("SSE client connected (%s)", token)
        headers = {
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "Access-Control-Allow-Origin": "*",
            "X-Accel-Buffering": "no",
        }
        return StreamingResponse(self.stream(token, queue), media_type="text/event-stream", headers=headers)

    def hot_reload_script(self) -> str:
        return _HOT_RELOAD_SCRIPT % self.reload_path


def _close_queue(queue: asyncio.Queue) -> None:
    # Make room for the close marker; pending messages are irrelevant now
    while True:
        try:
            queue.put_nowait(_CLOSED)
            return
        except asyncio.QueueFull:
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
