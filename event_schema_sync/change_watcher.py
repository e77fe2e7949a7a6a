import os
import queue
import threading
import time
from dataclasses import dataclass
from logging import getLogger

from .config import WatcherSettings
from .errors import WatcherDisconnected


logger = getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    path: str
    detected_at: float


def file_signature(path):
    """(mtime_ns, size) of the file, None if it does not exist right now"""
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return None
    return st.st_mtime_ns, st.st_size


class ChangeWatcher:
    """Observes a single file from a background thread.

    Writes are reported as ChangeEvent once the file has been quiet for
    `debounce_interval` seconds, so a burst of writes produces one event.
    At most one event is kept pending, later ones collapse into it.
    """

    JOIN_TIMEOUT = 2.0

    def __init__(self, path, settings: WatcherSettings = None):
        self.path = str(path)
        self.settings = settings or WatcherSettings()
        self.events = queue.Queue(maxsize=1)
        self.thread = None
        self.should_stop = threading.Event()
        self.failure = None
        self.last_signature = None
        self.pending_since = None

    def start(self):
        if self.thread is not None:
            raise RuntimeError(f'watcher for {self.path} already started')
        # baseline taken before returning, any later write counts as a change
        self.last_signature = file_signature(self.path)
        self.should_stop.clear()
        self.thread = threading.Thread(
            target=self._run,
            daemon=True,
            name=f'ChangeWatcher-{os.path.basename(self.path)}',
        )
        self.thread.start()
        logger.info(
            f'watching {self.path} for changes '
            f'(debounce {self.settings.debounce_interval}s)'
        )
        return self

    def stop(self):
        self.should_stop.set()
        if self.thread is not None and self.thread.is_alive():
            self.thread.join(timeout=ChangeWatcher.JOIN_TIMEOUT)

    def is_running(self):
        return self.thread is not None and self.thread.is_alive()

    def _run(self):
        try:
            while not self.should_stop.wait(self.settings.poll_interval):
                self.check_once(time.monotonic())
        except Exception as e:
            logger.error(f'change watcher for {self.path} crashed: {e}', exc_info=True)
            self.failure = e

    def check_once(self, now):
        signature = file_signature(self.path)
        if signature is not None and signature != self.last_signature:
            self.last_signature = signature
            self.pending_since = now
            logger.debug(f'write detected on {self.path}')
            return

        if self.pending_since is None:
            return
        if now - self.pending_since < self.settings.debounce_interval:
            return

        self.pending_since = None
        self._publish(ChangeEvent(path=self.path, detected_at=time.time()))

    def _publish(self, event):
        try:
            self.events.put_nowait(event)
        except queue.Full:
            logger.debug(f'change on {self.path} merged into the pending notification')

    def poll_nonblocking(self) -> ChangeEvent | None:
        try:
            return self.events.get_nowait()
        except queue.Empty:
            pass

        if not self.is_running():
            if self.failure is not None:
                raise WatcherDisconnected(
                    f'change watcher for {self.path} stopped: {self.failure}'
                ) from self.failure
            raise WatcherDisconnected(f'change watcher for {self.path} is not running')
        return None
