from typing import Callable, Optional

from PySide6.QtCore import QObject, Signal

from .models import Phase, ProgressEvent, TaskKey, TransferKind
from .utils import get_logger


class Subscription:
    """Connection to ``TransferEvents.progress`` that is released exactly once."""

    def __init__(self, events: "TransferEvents", slot: Callable[[ProgressEvent], None]) -> None:
        self._events: Optional[TransferEvents] = events
        self._slot = slot
        events.progress.connect(slot)

    @property
    def active(self) -> bool:
        return self._events is not None

    def release(self) -> None:
        if self._events is None:
            return
        events, self._events = self._events, None
        try:
            events.progress.disconnect(self._slot)
        except (RuntimeError, TypeError):
            # The channel was already destroyed with its owner.
            get_logger("pancloud.events").debug("Progress channel gone before release")

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()


class TransferEvents(QObject):
    """Progress notifications for every transfer, whichever thread emits them.

    Receivers living on the GUI thread get cross-thread emissions queued,
    same-thread emissions are delivered directly.
    """

    progress = Signal(object)

    def emit_progress(
        self,
        kind: TransferKind,
        key: TaskKey,
        progress: int,
        phase: Phase,
        message: Optional[str] = None,
    ) -> None:
        self.progress.emit(ProgressEvent(kind=kind, key=key, progress=int(progress), phase=phase, message=message))

    def subscribe(self, slot: Callable[[ProgressEvent], None]) -> Subscription:
        return Subscription(self, slot)
