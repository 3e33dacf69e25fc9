from typing import Optional

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QHBoxLayout,
    QLabel,
    QProgressBar,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from ...controller import CloudController
from ...models import Phase, TransferKind, TransferTask

_PHASE_LABELS = {
    Phase.STARTING: "Starting",
    Phase.HASHING: "Hashing",
    Phase.IN_PROGRESS: "Uploading",
    Phase.FINISHED: "Done",
    Phase.FAILED: "Failed",
}


class TransferRow(QWidget):
    def __init__(self, controller: CloudController, task: TransferTask, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        layout = QHBoxLayout(self)
        layout.setContentsMargins(4, 2, 4, 2)

        name = QLabel(task.display_name)
        name.setMinimumWidth(160)
        name.setToolTip(str(task.key))
        layout.addWidget(name, 1)

        bar = QProgressBar()
        bar.setRange(0, 100)
        bar.setValue(task.progress)
        bar.setFixedWidth(180)
        layout.addWidget(bar)

        status = QLabel(_PHASE_LABELS[task.phase])
        if task.phase == Phase.FAILED:
            status.setStyleSheet("color: #b00020;")
            status.setToolTip(task.error or "")
        layout.addWidget(status)

        if task.phase.is_terminal:
            close_btn = QPushButton("x")
            close_btn.setFlat(True)
            close_btn.setFixedWidth(24)
            close_btn.setCursor(Qt.PointingHandCursor)
            close_btn.clicked.connect(lambda: controller.dismiss_transfer(task.kind, task.key))
            layout.addWidget(close_btn)


class TransfersPanel(QWidget):
    """Upload tasks, always visible under the file table."""

    def __init__(self, controller: CloudController, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self._controller = controller

        root = QVBoxLayout(self)
        root.setContentsMargins(0, 0, 0, 0)
        self.header = QLabel("Uploads")
        self.header.setStyleSheet("font-weight: 600; color: #444444;")
        root.addWidget(self.header)

        self.rows = QVBoxLayout()
        root.addLayout(self.rows)

        self.empty_label = QLabel("No upload in progress.")
        self.empty_label.setStyleSheet("color: #888888;")
        root.addWidget(self.empty_label)

        controller.transfers_changed.connect(self.refresh)

    def refresh(self) -> None:
        while self.rows.count():
            item = self.rows.takeAt(0)
            widget = item.widget()
            if widget:
                widget.deleteLater()
        tasks = self._controller.transfers(TransferKind.UPLOAD)
        for task in tasks:
            self.rows.addWidget(TransferRow(self._controller, task))
        self.empty_label.setVisible(not tasks)
        self.header.setText(f"Uploads ({len(tasks)})" if tasks else "Uploads")
