from dataclasses import replace
from typing import Any, Callable, Dict, Optional, Tuple

from .backend import StorageBackend
from .errors import PanError, TransferRuntimeError, TransferStartError
from .models import (
    DownloadRequest,
    FileEntry,
    Phase,
    ProgressEvent,
    TaskKey,
    TransferKind,
    TransferTask,
    UploadRequest,
)
from .utils import display_name_from_path, get_logger

Slot = Tuple[TransferKind, TaskKey]


def _clamp(progress: Any) -> int:
    try:
        value = int(progress)
    except (TypeError, ValueError):
        return 0
    return max(0, min(value, 100))


class TransferTracker:
    """Registry of the downloads and uploads on display.

    Tasks are keyed by ``(kind, key)``: the remote file id for downloads, the
    local source path for uploads. Progress events are applied last-write-wins,
    so a late ``30%`` after ``50%`` is shown as is; only the phase decides the
    lifecycle.

    A finished task stays for ``grace_seconds`` and is then removed if it is
    still finished. Failed tasks stay until dismissed, retried, or the user
    navigates elsewhere.
    """

    def __init__(
        self,
        backend: StorageBackend,
        runner: Any,
        scheduler: Any,
        grace_seconds: float = 2.0,
        on_change: Optional[Callable[[], None]] = None,
        on_uploads_drained: Optional[Callable[[], None]] = None,
    ) -> None:
        self._backend = backend
        self._runner = runner
        self._scheduler = scheduler
        self.grace_seconds = grace_seconds
        self._on_change = on_change or (lambda: None)
        self._on_uploads_drained = on_uploads_drained or (lambda: None)
        self._tasks: Dict[Slot, TransferTask] = {}
        self._timers: Dict[Slot, Any] = {}
        self._attempts: Dict[Slot, int] = {}
        self._pending: Dict[Slot, int] = {}
        self.logger = get_logger("pancloud.transfers")

    # -- read side -------------------------------------------------------

    def tasks(self, kind: Optional[TransferKind] = None) -> Tuple[TransferTask, ...]:
        return tuple(task for task in self._tasks.values() if kind is None or task.kind == kind)

    def get(self, kind: TransferKind, key: TaskKey) -> Optional[TransferTask]:
        return self._tasks.get((kind, key))

    def has_uploads(self) -> bool:
        return any(kind == TransferKind.UPLOAD for kind, _key in self._tasks)

    # -- starting transfers ----------------------------------------------

    def start_download(
        self,
        entry: FileEntry,
        destination_path: str,
        on_error: Callable[[PanError], None],
    ) -> None:
        slot = (TransferKind.DOWNLOAD, entry.id)
        attempt = self._register(slot, entry.name)
        request = DownloadRequest.for_entry(entry, destination_path)
        self.logger.info("Download of %s requested -> %s", entry.name, destination_path)
        self._launch(slot, attempt, lambda: self._backend.start_download(request), on_error)

    def start_upload(
        self,
        source_path: str,
        target_directory_id: int,
        on_error: Callable[[PanError], None],
    ) -> None:
        slot = (TransferKind.UPLOAD, source_path)
        attempt = self._register(slot, display_name_from_path(source_path))
        request = UploadRequest(parent_directory_id=target_directory_id, source_path=source_path)
        self.logger.info("Upload of %s requested into %s", source_path, target_directory_id)
        self._launch(slot, attempt, lambda: self._backend.start_upload(request), on_error)

    def _launch(
        self,
        slot: Slot,
        attempt: int,
        work: Callable[[], None],
        on_error: Callable[[PanError], None],
    ) -> None:
        self._pending[slot] = self._pending.get(slot, 0) + 1
        self._runner.run(
            work,
            on_error=lambda exc: self._on_backend_error(slot, attempt, exc, on_error),
            on_finished=lambda: self._worker_done(slot),
        )

    def _worker_done(self, slot: Slot) -> None:
        remaining = self._pending.get(slot, 1) - 1
        if remaining > 0:
            self._pending[slot] = remaining
            return
        self._pending.pop(slot, None)
        self._forget_attempts(slot)

    def _forget_attempts(self, slot: Slot) -> None:
        # Attempt numbers only matter while a worker of that slot may still report.
        if slot not in self._tasks and slot not in self._pending:
            self._attempts.pop(slot, None)

    def _register(self, slot: Slot, display_name: str) -> int:
        existing = self._tasks.get(slot)
        if existing is not None and not existing.phase.is_terminal:
            raise TransferStartError(f"{existing.display_name} is already being transferred")
        self._cancel_timer(slot)
        attempt = self._attempts.get(slot, 0) + 1
        self._attempts[slot] = attempt
        kind, key = slot
        self._tasks[slot] = TransferTask(kind=kind, key=key, display_name=display_name)
        self._on_change()
        return attempt

    def _on_backend_error(
        self,
        slot: Slot,
        attempt: int,
        exc: Exception,
        on_error: Callable[[PanError], None],
    ) -> None:
        task = self._tasks.get(slot)
        if task is None or self._attempts.get(slot) != attempt:
            # Superseded by a retry; the newer attempt owns the entry.
            self.logger.info("Error from an earlier attempt of %s: %s", slot[1], exc)
            on_error(exc if isinstance(exc, PanError) else PanError(str(exc)))
            return
        if isinstance(exc, TransferStartError) or (
            not isinstance(exc, TransferRuntimeError) and task.phase in (Phase.STARTING, Phase.HASHING)
        ):
            self.logger.warning("Transfer of %s refused: %s", task.display_name, exc)
            self._remove(slot)
            on_error(exc if isinstance(exc, TransferStartError) else TransferStartError(str(exc)))
            return
        self.logger.warning("Transfer of %s failed: %s", task.display_name, exc)
        self._store(slot, replace(task, phase=Phase.FAILED, error=str(exc)))
        on_error(exc if isinstance(exc, TransferRuntimeError) else TransferRuntimeError(slot[1], str(exc)))

    # -- progress --------------------------------------------------------

    def apply(self, event: ProgressEvent) -> TransferTask:
        slot = (event.kind, event.key)
        progress = _clamp(event.progress)
        error = event.message if event.phase == Phase.FAILED else None
        task = self._tasks.get(slot)
        if task is None:
            self.logger.debug("Progress for untracked %s %s, adding it", event.kind.value, event.key)
            name = display_name_from_path(event.key) if isinstance(event.key, str) else str(event.key)
            task = TransferTask(kind=event.kind, key=event.key, display_name=name)
        task = replace(task, progress=progress, phase=event.phase, error=error)
        self._store(slot, task)
        return task

    def _store(self, slot: Slot, task: TransferTask) -> None:
        self._tasks[slot] = task
        if task.phase == Phase.FINISHED:
            if slot not in self._timers:
                self._timers[slot] = self._scheduler.call_later(
                    self.grace_seconds, lambda: self._expire(slot)
                )
        else:
            self._cancel_timer(slot)
        self._on_change()

    def _expire(self, slot: Slot) -> None:
        self._timers.pop(slot, None)
        task = self._tasks.get(slot)
        if task is None or task.phase != Phase.FINISHED:
            return
        self._remove(slot)
        if slot[0] == TransferKind.UPLOAD and not self.has_uploads():
            self.logger.info("All uploads done")
            self._on_uploads_drained()

    # -- removal ---------------------------------------------------------

    def _cancel_timer(self, slot: Slot) -> None:
        handle = self._timers.pop(slot, None)
        if handle is not None:
            handle.cancel()

    def _remove(self, slot: Slot) -> None:
        self._cancel_timer(slot)
        removed = self._tasks.pop(slot, None)
        self._forget_attempts(slot)
        if removed is not None:
            self._on_change()

    def dismiss(self, kind: TransferKind, key: TaskKey) -> bool:
        task = self._tasks.get((kind, key))
        if task is None or not task.phase.is_terminal:
            return False
        self._remove((kind, key))
        return True

    def dismiss_failed(self) -> int:
        failed = [slot for slot, task in self._tasks.items() if task.phase == Phase.FAILED]
        for slot in failed:
            self._remove(slot)
        return len(failed)

    def close(self) -> None:
        for slot in list(self._timers):
            self._cancel_timer(slot)
