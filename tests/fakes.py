"""
Test doubles for the controller: scripted backend, prompt stub, runners that
complete work synchronously or on demand, and a scheduler driven by hand.
"""

import gc
import os
import unittest
from typing import Any, Callable, Dict, List, Optional, Sequence

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6.QtCore import QCoreApplication, QEvent

from pancloud.backend import StorageBackend
from pancloud.config import Settings
from pancloud.controller import CloudController
from pancloud.events import TransferEvents
from pancloud.models import (
    DownloadRequest,
    FileEntry,
    FileKind,
    Phase,
    ShareResult,
    TransferKind,
    UploadRequest,
)
from pancloud.prompts import Prompts


class QtTestCase(unittest.TestCase):
    """Creates the Qt core application once for all tests.

    Controllers and signal recorders made through the helpers below are torn
    down after each test, and pending deletions are flushed after each class,
    so no Qt object is left for the interpreter to collect at exit.
    """

    @classmethod
    def setUpClass(cls):
        cls.app = QCoreApplication.instance() or QCoreApplication([])

    @classmethod
    def tearDownClass(cls):
        QCoreApplication.sendPostedEvents(None, QEvent.Type.DeferredDelete.value)
        gc.collect()

    def record(self, signal) -> "SignalRecorder":
        recorder = SignalRecorder(signal)
        self.addCleanup(recorder.disconnect)
        return recorder

    def new_backend(self) -> "FakeBackend":
        backend = FakeBackend()
        self.addCleanup(backend.events.deleteLater)
        return backend

    def new_controller(self, *args, **kwargs) -> CloudController:
        controller = make_controller(*args, **kwargs)
        self.addCleanup(dispose, controller)
        return controller


class _Job:
    def __init__(self, fn, on_result, on_error, on_finished):
        self.fn = fn
        self.on_result = on_result
        self.on_error = on_error
        self.on_finished = on_finished

    def execute(self) -> None:
        try:
            result = self.fn()
        except Exception as exc:
            if self.on_error:
                self.on_error(exc)
        else:
            if self.on_result:
                self.on_result(result)
        finally:
            if self.on_finished:
                self.on_finished()


class ImmediateRunner:
    """Runs each call to completion before ``run`` returns."""

    def __init__(self) -> None:
        self.calls = 0

    def run(self, fn, on_result=None, on_error=None, on_finished=None):
        self.calls += 1
        _Job(fn, on_result, on_error, on_finished).execute()


class DeferredRunner:
    """Queues calls; the test decides when and in which order they finish."""

    def __init__(self) -> None:
        self.pending: List[_Job] = []

    def run(self, fn, on_result=None, on_error=None, on_finished=None):
        self.pending.append(_Job(fn, on_result, on_error, on_finished))

    def complete(self, index: int = 0) -> None:
        self.pending.pop(index).execute()

    def complete_all(self) -> None:
        while self.pending:
            self.complete(0)


class _ManualCall:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    def __init__(self) -> None:
        self.now = 0.0
        self.calls: List[_ManualCall] = []

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> _ManualCall:
        call = _ManualCall(self.now + delay_seconds, callback)
        self.calls.append(call)
        return call

    @property
    def pending(self) -> int:
        return sum(1 for call in self.calls if not call.cancelled and not call.fired)

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = [c for c in self.calls if not c.cancelled and not c.fired and c.due <= self.now]
        for call in sorted(due, key=lambda c: c.due):
            if call.cancelled:
                continue
            call.fired = True
            call.callback()


class FakeBackend(StorageBackend):
    def __init__(self) -> None:
        self.events = TransferEvents()
        self.auto_login_result: Any = False
        self.saved_username = "saved-user"
        self.auto_login_calls = 0
        self.login_results: List[Any] = []
        self.logout_error: Optional[Exception] = None
        self.listings: Dict[int, Any] = {0: []}
        self.list_calls: List[int] = []
        self.download_error: Optional[Exception] = None
        self.upload_error: Optional[Exception] = None
        self.download_hook: Optional[Callable[[DownloadRequest], None]] = None
        self.mutation_error: Optional[Exception] = None
        self.downloads: List[DownloadRequest] = []
        self.uploads: List[UploadRequest] = []
        self.created: List[tuple] = []
        self.deleted: List[int] = []
        self.shared: List[tuple] = []
        self.logout_calls = 0

    def try_auto_login(self) -> bool:
        self.auto_login_calls += 1
        if isinstance(self.auto_login_result, Exception):
            raise self.auto_login_result
        if self.auto_login_result:
            self.username = self.saved_username
        return self.auto_login_result

    def login(self, username: str, password: str) -> str:
        result = self.login_results.pop(0) if self.login_results else "Login successful"
        if isinstance(result, Exception):
            raise result
        self.username = username
        return result

    def logout(self) -> None:
        self.logout_calls += 1
        if self.logout_error is not None:
            raise self.logout_error

    def list_directory(self, parent_id: int) -> List[FileEntry]:
        self.list_calls.append(parent_id)
        result = self.listings.get(parent_id, [])
        if isinstance(result, Exception):
            raise result
        return list(result)

    def start_download(self, request: DownloadRequest) -> None:
        self.downloads.append(request)
        if self.download_hook is not None:
            self.download_hook(request)
        if self.download_error is not None:
            raise self.download_error

    def start_upload(self, request: UploadRequest) -> None:
        self.uploads.append(request)
        if self.upload_error is not None:
            raise self.upload_error

    def create_folder(self, parent_id: int, name: str) -> None:
        if self.mutation_error is not None:
            raise self.mutation_error
        self.created.append((parent_id, name))

    def delete_file(self, file_id: int) -> None:
        if self.mutation_error is not None:
            raise self.mutation_error
        self.deleted.append(file_id)

    def share_files(self, file_ids: Sequence[int], password: Optional[str] = None) -> ShareResult:
        if self.mutation_error is not None:
            raise self.mutation_error
        self.shared.append((list(file_ids), password))
        return ShareResult(share_url="https://share.test/s/abc", share_password=password)

    def progress(self, kind: TransferKind, key, percent: int, phase: Phase) -> None:
        self.events.emit_progress(kind, key, percent, phase)


class StubPrompts(Prompts):
    def __init__(self) -> None:
        self.confirm_answer = True
        self.text_answer: Optional[str] = None
        self.save_path: Optional[str] = None
        self.open_path: Optional[str] = None
        self.asked: List[str] = []

    def confirm(self, title: str, text: str) -> bool:
        self.asked.append(title)
        return self.confirm_answer

    def ask_text(self, title: str, label: str, default: str = "") -> Optional[str]:
        self.asked.append(title)
        return self.text_answer

    def choose_save_path(self, suggested_name: str) -> Optional[str]:
        self.asked.append("save")
        return self.save_path

    def choose_open_path(self) -> Optional[str]:
        self.asked.append("open")
        return self.open_path


class SignalRecorder:
    def __init__(self, signal) -> None:
        self.calls: List[tuple] = []
        self._signal = signal
        signal.connect(self._record)

    def _record(self, *args) -> None:
        self.calls.append(args)

    def disconnect(self) -> None:
        if self._signal is None:
            return
        signal, self._signal = self._signal, None
        try:
            signal.disconnect(self._record)
        except (RuntimeError, TypeError):
            pass

    @property
    def values(self) -> list:
        return [args[0] if args else None for args in self.calls]


def entry(entry_id: int, name: str, directory: bool = False, size: int = 10) -> FileEntry:
    return FileEntry(
        id=entry_id,
        name=name,
        size_bytes=0 if directory else size,
        kind=FileKind.DIRECTORY if directory else FileKind.FILE,
        content_hash=None if directory else f"etag-{entry_id}",
        storage_key_flag=None if directory else f"flag-{entry_id}",
    )


def make_controller(backend=None, prompts=None, runner=None, scheduler=None, grace_ms: int = 2000):
    controller = CloudController(
        backend or FakeBackend(),
        prompts or StubPrompts(),
        runner=runner or ImmediateRunner(),
        scheduler=scheduler or ManualScheduler(),
        settings=Settings(grace_ms=grace_ms, http_log_path=os.devnull),
    )
    return controller.start()


def dispose(controller: CloudController) -> None:
    controller.close()
    controller.deleteLater()
