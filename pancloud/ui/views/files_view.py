from typing import Dict, Optional

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QAbstractItemView,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QMessageBox,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from ...controller import CloudController
from ...models import DirectoryListing, FileEntry, Phase, ShareResult, TransferKind
from ...utils import format_bytes
from .transfers_panel import TransfersPanel

COLUMNS = ("Name", "Size", "Type", "Progress", "Actions")
COL_PROGRESS = 3
COL_ACTIONS = 4


def _progress_text(controller: CloudController, entry: FileEntry) -> str:
    task = controller.transfer(TransferKind.DOWNLOAD, entry.id)
    if task is None:
        return ""
    if task.phase == Phase.FINISHED:
        return "Downloaded"
    if task.phase == Phase.FAILED:
        return "Failed"
    if task.phase == Phase.STARTING:
        return "Starting..."
    return f"{task.progress}%"


class FilesView(QWidget):
    def __init__(self, controller: CloudController, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self._controller = controller
        self._rows: Dict[int, int] = {}

        root = QVBoxLayout(self)
        root.setContentsMargins(12, 12, 12, 12)
        root.setSpacing(10)

        header = QHBoxLayout()
        self.back_btn = self._button("Back", controller.go_back)
        self.refresh_btn = self._button("Refresh", controller.refresh)
        self.folder_btn = self._button("New folder", controller.create_folder)
        self.upload_btn = self._button("Upload file", controller.upload)
        self.logout_btn = self._button("Logout", controller.logout)
        for btn in (self.back_btn, self.refresh_btn, self.folder_btn, self.upload_btn):
            header.addWidget(btn)
        self.path_label = QLabel("/")
        self.path_label.setStyleSheet("color: #666666;")
        header.addStretch(1)
        header.addWidget(self.path_label)
        header.addStretch(1)
        header.addWidget(self.logout_btn)
        root.addLayout(header)

        self.table = QTableWidget(0, len(COLUMNS))
        self.table.setHorizontalHeaderLabels(COLUMNS)
        self.table.setEditTriggers(QAbstractItemView.NoEditTriggers)
        self.table.setSelectionBehavior(QAbstractItemView.SelectRows)
        self.table.verticalHeader().setVisible(False)
        self.table.horizontalHeader().setSectionResizeMode(0, QHeaderView.Stretch)
        self.table.cellDoubleClicked.connect(self._on_double_click)
        root.addWidget(self.table, 1)

        self.transfers_panel = TransfersPanel(controller)
        root.addWidget(self.transfers_panel)

        controller.listing_changed.connect(self._apply_listing)
        controller.busy_changed.connect(self._apply_busy)
        controller.transfers_changed.connect(self._update_progress)
        controller.share_created.connect(self._show_share)

    def _button(self, text: str, action) -> QPushButton:
        btn = QPushButton(text)
        btn.setCursor(Qt.PointingHandCursor)
        btn.clicked.connect(lambda: action())
        return btn

    def _apply_busy(self, busy: bool) -> None:
        # Navigation waits for the listing in flight.
        self.back_btn.setEnabled(not busy and self._controller.can_go_back)
        self.refresh_btn.setEnabled(not busy)
        self.table.setEnabled(not busy)
        if busy:
            self.path_label.setText(f"{self._path_text()}  (loading...)")

    def _path_text(self) -> str:
        return " / ".join(str(i) for i in self._controller.navigation)

    def _apply_listing(self, listing: Optional[DirectoryListing]) -> None:
        self.table.setRowCount(0)
        self._rows = {}
        if listing is None:
            self.path_label.setText("/")
            return
        self.path_label.setText(self._path_text())
        self.back_btn.setEnabled(self._controller.can_go_back and not self._controller.busy)
        for entry in listing.entries:
            row = self.table.rowCount()
            self.table.insertRow(row)
            self._rows[entry.id] = row
            name_item = QTableWidgetItem(entry.name)
            name_item.setData(Qt.UserRole, entry.id)
            self.table.setItem(row, 0, name_item)
            size = "-" if entry.is_directory else format_bytes(entry.size_bytes)
            self.table.setItem(row, 1, QTableWidgetItem(size))
            self.table.setItem(row, 2, QTableWidgetItem("Folder" if entry.is_directory else "File"))
            self.table.setItem(row, COL_PROGRESS, QTableWidgetItem(_progress_text(self._controller, entry)))
            self.table.setCellWidget(row, COL_ACTIONS, self._actions_for(entry))

    def _actions_for(self, entry: FileEntry) -> QWidget:
        box = QWidget()
        layout = QHBoxLayout(box)
        layout.setContentsMargins(2, 0, 2, 0)
        if entry.is_directory:
            layout.addWidget(self._button("Open", lambda: self._controller.open_entry(entry)))
        layout.addWidget(self._button("Download", lambda: self._controller.download(entry)))
        layout.addWidget(self._button("Share", lambda: self._controller.share([entry])))
        layout.addWidget(self._button("Delete", lambda: self._controller.delete(entry)))
        return box

    def _entry_at(self, row: int) -> Optional[FileEntry]:
        listing = self._controller.listing
        item = self.table.item(row, 0)
        if listing is None or item is None:
            return None
        return listing.find(item.data(Qt.UserRole))

    def _on_double_click(self, row: int, _column: int) -> None:
        entry = self._entry_at(row)
        if entry is not None and not self._controller.busy:
            self._controller.open_entry(entry)

    def _update_progress(self) -> None:
        listing = self._controller.listing
        if listing is None:
            return
        for entry in listing.entries:
            row = self._rows.get(entry.id)
            if row is not None:
                self.table.setItem(row, COL_PROGRESS, QTableWidgetItem(_progress_text(self._controller, entry)))

    def _show_share(self, result: ShareResult) -> None:
        text = f"Link: {result.share_url}"
        if result.share_password:
            text += f"\nPassword: {result.share_password}"
        QMessageBox.information(self, "Share", text)
