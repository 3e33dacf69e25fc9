from typing import Any, Callable, Optional

from PySide6.QtCore import QObject, QRunnable, QThread, QThreadPool, QTimer, Qt, Signal, Slot

from ..utils import get_logger


class WorkerSignals(QObject):
    """Outcome of one background call: ``result`` or ``error``, then ``finished``."""

    result = Signal(object)
    error = Signal(Exception)
    finished = Signal()


class Worker(QRunnable):
    def __init__(self, fn: Callable[[], Any]) -> None:
        super().__init__()
        self.fn = fn
        self.signals = WorkerSignals()
        self.logger = get_logger("pancloud.qt")

    @Slot()
    def run(self) -> None:
        name = getattr(self.fn, "__qualname__", repr(self.fn))
        self.logger.debug("Running %s on %s", name, QThread.currentThread())
        try:
            outcome = self.fn()
        except Exception as exc:
            self.logger.debug("%s raised %r", name, exc)
            self.signals.error.emit(exc)
        else:
            self.signals.result.emit(outcome)
        self.signals.finished.emit()


class TaskRunner:
    """Runs blocking calls on the global thread pool.

    Callbacks are queued back onto the thread that owns the signals, the GUI
    thread in practice.
    """

    def __init__(self) -> None:
        self.pool = QThreadPool.globalInstance()
        self.logger = get_logger("pancloud.qt")
        self._workers = set()

    def run(
        self,
        fn: Callable[[], Any],
        on_result: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_finished: Optional[Callable[[], None]] = None,
    ) -> Worker:
        worker = Worker(fn)
        self._workers.add(worker)
        if on_result:
            worker.signals.result.connect(on_result, Qt.QueuedConnection)
        if on_error:
            worker.signals.error.connect(on_error, Qt.QueuedConnection)
        else:
            worker.signals.error.connect(self._log_unhandled, Qt.QueuedConnection)
        if on_finished:
            worker.signals.finished.connect(on_finished, Qt.QueuedConnection)
        worker.signals.finished.connect(lambda: self._workers.discard(worker), Qt.QueuedConnection)
        self.pool.start(worker)
        return worker

    def _log_unhandled(self, exc: Exception) -> None:
        self.logger.error("Background task failed: %s", exc)

    def wait(self, msecs: int = -1) -> bool:
        return self.pool.waitForDone(msecs)


class ScheduledCall:
    def __init__(self, timer: QTimer, callback: Callable[[], None]) -> None:
        self._timer = timer
        self._callback = callback
        self._done = False
        timer.timeout.connect(self._fire)

    @property
    def pending(self) -> bool:
        return not self._done

    def _fire(self) -> None:
        if self._done:
            return
        self._done = True
        self._timer.deleteLater()
        self._callback()

    def cancel(self) -> None:
        if self._done:
            return
        self._done = True
        self._timer.stop()
        self._timer.deleteLater()


class QtScheduler:
    """One-shot callbacks on the Qt event loop, each individually cancelable."""

    def __init__(self, parent: Optional[QObject] = None) -> None:
        self._parent = parent

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledCall:
        timer = QTimer(self._parent)
        timer.setSingleShot(True)
        timer.setInterval(max(int(delay_seconds * 1000), 0))
        call = ScheduledCall(timer, callback)
        timer.start()
        return call
