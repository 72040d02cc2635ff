"""Remote directory state for one file-transfer pane.

All transfer calls run on a single background worker. Results come back to
the Qt thread through ``_completed`` and are applied one at a time; listing
and preview results that were superseded in the meantime are dropped using
per-kind generation counters.
"""
from collections import deque
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime
from functools import partial
from typing import Callable, List, Optional
import logging

from PyQt5.QtCore import QObject, QTimer, pyqtSignal

from ..models.remote_file import RemoteFileEntry
from ..models.session import ConnectionConfig
from .outcome import Outcome
from .remote_path import basename, join_remote_path, normalize_remote_path, parent_path
from .transfer import TransferCommandEngine

logger = logging.getLogger(__name__)

LOG_LIMIT = 200
MIN_REFRESH_SECONDS = 1
MAX_REFRESH_SECONDS = 60


def clamp_refresh_seconds(seconds) -> int:
    try:
        seconds = int(seconds)
    except (TypeError, ValueError):
        seconds = MIN_REFRESH_SECONDS
    return max(MIN_REFRESH_SECONDS, min(MAX_REFRESH_SECONDS, seconds))


class RemoteFileService(QObject):
    entries_changed = pyqtSignal(str, list)
    remote_path_changed = pyqtSignal(str)
    preview_changed = pyqtSignal(str)
    status_changed = pyqtSignal(str)
    busy_changed = pyqtSignal(bool)
    log_appended = pyqtSignal(str)

    # Emitted from the worker thread; Qt queues it onto the thread owning the service
    _completed = pyqtSignal(object)

    def __init__(self, engine: TransferCommandEngine, executor: Executor = None, parent=None):
        super().__init__(parent)
        self.engine = engine
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="sshdeck-files")
        self._completed.connect(self._deliver)

        self.active_host: Optional[ConnectionConfig] = None
        self.remote_path = "."
        self.entries: List[RemoteFileEntry] = []
        self.selected_path: Optional[str] = None
        self.preview_text = ""
        self.status_message = "Select a host"
        self.busy = False
        self.auto_refresh_enabled = True
        self.live_preview_enabled = True
        self.refresh_seconds = 3
        self.logs = deque(maxlen=LOG_LIMIT)

        self._list_generation = 0
        self._preview_generation = 0
        self._jobs_in_flight = 0
        self._lists_in_flight = 0

        self.auto_refresh_timer = QTimer(self)
        self.auto_refresh_timer.timeout.connect(self._on_timer)

    # ===== state helpers =====
    @property
    def selected_entry(self) -> Optional[RemoteFileEntry]:
        if self.selected_path is None:
            return None
        for entry in self.entries:
            if entry.id == self.selected_path:
                return entry
        return None

    def _set_status(self, message: str):
        self.status_message = message
        self.status_changed.emit(message)

    def _set_preview(self, text: str):
        if text != self.preview_text:
            self.preview_text = text
            self.preview_changed.emit(text)

    def _set_remote_path(self, path: str):
        if path != self.remote_path:
            self.remote_path = path
            self.remote_path_changed.emit(path)

    def _set_entries(self, path: str, entries: List[RemoteFileEntry]):
        self.entries = list(entries)
        self.entries_changed.emit(path, list(entries))

    def _set_busy(self, busy: bool):
        if busy != self.busy:
            self.busy = busy
            self.busy_changed.emit(busy)

    def _add_log(self, message: str):
        line = f"[{datetime.now().strftime('%H:%M:%S')}] {message}"
        self.logs.append(line)
        logger.info(message)
        self.log_appended.emit(line)

    def _is_current(self, host_id: str) -> bool:
        return self.active_host is not None and self.active_host.id == host_id

    # ===== worker =====
    def _submit(self, job: Callable[[], Outcome], on_done: Callable[[Outcome], None]):
        self._jobs_in_flight += 1
        self._set_busy(True)

        def work():
            try:
                outcome = job()
            except Exception as e:
                logger.exception("Transfer job crashed")
                outcome = Outcome.failure(str(e))
            self._completed.emit(partial(on_done, outcome))

        self._executor.submit(work)

    def _deliver(self, callback):
        self._jobs_in_flight = max(0, self._jobs_in_flight - 1)
        if self._jobs_in_flight == 0:
            self._set_busy(False)
        callback()

    # ===== host and timer =====
    def activate(self, config: Optional[ConnectionConfig]):
        self.active_host = config
        self._list_generation += 1
        self._preview_generation += 1
        self.selected_path = None
        self._set_preview("")

        if config is None:
            self.auto_refresh_timer.stop()
            self._set_entries(self.remote_path, [])
            self._set_status("Select a host")
            return

        self._set_remote_path(normalize_remote_path(config.file_transfer.remote_root))
        self._set_entries(self.remote_path, [])
        self.auto_refresh_enabled = True
        self.live_preview_enabled = config.file_transfer.live_preview
        self.refresh_seconds = clamp_refresh_seconds(config.file_transfer.auto_refresh_seconds)
        self._add_log(f"Selected host {config.display_name()}, protocol {config.file_transfer.backend.title}")

        self._restart_timer()
        self.refresh()

    def set_auto_refresh(self, enabled: bool):
        self.auto_refresh_enabled = enabled
        self._restart_timer()
        self._add_log("Auto refresh enabled" if enabled else "Auto refresh disabled")

    def set_refresh_interval(self, seconds: int):
        self.refresh_seconds = clamp_refresh_seconds(seconds)
        self._restart_timer()

    def set_live_preview(self, enabled: bool):
        self.live_preview_enabled = enabled
        self._add_log("Live preview enabled" if enabled else "Live preview disabled")
        if enabled:
            self.refresh_preview()

    def _restart_timer(self):
        self.auto_refresh_timer.stop()
        if not self.auto_refresh_enabled or self.active_host is None:
            return
        self.auto_refresh_timer.start(self.refresh_seconds * 1000)

    def _on_timer(self):
        # A slow host would otherwise never finish a listing before the next tick supersedes it
        if self._lists_in_flight:
            return
        self.refresh()

    # ===== listing =====
    def refresh(self):
        host = self.active_host
        if host is None:
            self._set_status("Select a host")
            return

        path = normalize_remote_path(self.remote_path)
        self._set_remote_path(path)

        self._list_generation += 1
        generation = self._list_generation
        self._lists_in_flight += 1
        self._submit(partial(self.engine.list_directory, host, path),
                     partial(self._apply_listing, generation, host.id, path))

    def _apply_listing(self, generation: int, host_id: str, path: str, outcome: Outcome):
        self._lists_in_flight = max(0, self._lists_in_flight - 1)
        if (generation != self._list_generation or not self._is_current(host_id)
                or path != self.remote_path):
            logger.debug(f"Discarding stale listing of {path}")
            return

        if not outcome.ok:
            self._set_status(outcome.error)
            self._add_log(f"List failed: {outcome.error}")
            return

        entries = outcome.value or []
        self._set_entries(path, entries)
        self._set_status(f"{len(entries)} item(s) in {path}")
        self._add_log(f"Listed {len(entries)} item(s) in {path}")

        if self.selected_entry is None:
            self.selected_path = None
            self._set_preview("")
        elif self.live_preview_enabled:
            self.refresh_preview()

    def go_up(self):
        self.set_remote_path(parent_path(self.remote_path))

    def set_remote_path(self, path: str):
        self._set_remote_path(normalize_remote_path(path))
        self.selected_path = None
        self._set_preview("")
        self.refresh()

    def open_entry(self, entry: RemoteFileEntry):
        if entry.is_dir:
            self.set_remote_path(entry.full_path)
        else:
            self.selected_path = entry.id
            self.refresh_preview()

    # ===== preview =====
    def select(self, full_path: Optional[str]):
        self.selected_path = full_path
        entry = self.selected_entry
        if entry is None or entry.is_dir:
            self._preview_generation += 1
            self._set_preview("")
            return
        if self.live_preview_enabled:
            self.refresh_preview()

    def refresh_preview(self):
        host = self.active_host
        entry = self.selected_entry
        if host is None or entry is None or entry.is_dir:
            return

        self._preview_generation += 1
        generation = self._preview_generation
        self._submit(partial(self.engine.preview, host, entry.full_path),
                     partial(self._apply_preview, generation, host.id, entry.full_path))

    def _apply_preview(self, generation: int, host_id: str, path: str, outcome: Outcome):
        if (generation != self._preview_generation or not self._is_current(host_id)
                or path != self.selected_path):
            logger.debug(f"Discarding stale preview of {path}")
            return
        self._set_preview(outcome.value if outcome.ok else f"Preview error: {outcome.error}")

    # ===== transfers and file operations =====
    def _run_operation(self, label: str, subject: str, job: Callable[[], Outcome]):
        host = self.active_host
        self._set_status(f"{label} {subject}...")
        self._add_log(f"{label} started: {subject}")
        self._submit(job, partial(self._finish_operation, label, subject, host.id))

    def _finish_operation(self, label: str, subject: str, host_id: str, outcome: Outcome):
        if not outcome.ok:
            self._add_log(f"{label} failed: {outcome.error}")
            if self._is_current(host_id):
                self._set_status(outcome.error)
            return

        self._add_log(f"{label} completed: {subject}")
        if self._is_current(host_id):
            self._set_status(f"{label} completed")
            self.refresh()

    def upload(self, local_path: str):
        host = self.active_host
        if host is None:
            self._set_status("Select a host")
            return
        self._run_operation("Upload", basename(local_path),
                            partial(self.engine.upload, host, local_path, self.remote_path))

    def download(self, entry: Optional[RemoteFileEntry], local_path: str):
        host = self.active_host
        if host is None:
            self._set_status("Select a host")
            return
        if entry is None or entry.is_dir:
            self._set_status("Select a file to download")
            return
        self._run_operation("Download", entry.name,
                            partial(self.engine.download, host, entry.full_path, local_path))

    def make_directory(self, name: str):
        host = self.active_host
        if host is None:
            self._set_status("Select a host")
            return
        name = (name or "").strip()
        if not name or "/" in name:
            self._set_status("Folder name is invalid")
            return
        path = join_remote_path(self.remote_path, name)
        self._run_operation("Create folder", name, partial(self.engine.make_directory, host, path))

    def rename(self, entry: RemoteFileEntry, new_name: str):
        host = self.active_host
        if host is None:
            self._set_status("Select a host")
            return
        new_name = (new_name or "").strip()
        if not new_name or "/" in new_name:
            self._set_status("New name is invalid")
            return
        new_path = join_remote_path(parent_path(entry.full_path), new_name)
        self._run_operation("Rename", f"{entry.name} -> {new_name}",
                            partial(self.engine.rename, host, entry.full_path, new_path))

    def delete(self, entry: RemoteFileEntry):
        host = self.active_host
        if host is None:
            self._set_status("Select a host")
            return
        self._run_operation("Delete", entry.name,
                            partial(self.engine.delete, host, entry.full_path, entry.is_dir))

    def shutdown(self):
        self.auto_refresh_timer.stop()
        self._list_generation += 1
        self._preview_generation += 1
        if self._owns_executor:
            self._executor.shutdown(wait=False)
