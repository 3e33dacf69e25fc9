from typing import Optional

from PySide6.QtCore import Qt
from PySide6.QtWidgets import QMainWindow, QPushButton, QStackedWidget, QToolButton

from ..backend import PanBackend, StorageBackend
from ..config import Settings
from ..controller import CloudController
from .prompts import QtPrompts
from .views.files_view import FilesView
from .views.login_view import LoginView


class MainWindow(QMainWindow):
    def __init__(self, settings: Optional[Settings] = None, backend: Optional[StorageBackend] = None) -> None:
        super().__init__()
        self.setWindowTitle("Pan Cloud")
        self.resize(1100, 760)

        self.settings = settings or Settings.from_env()
        self.backend = backend or PanBackend(self.settings)
        self.controller = CloudController(
            self.backend,
            QtPrompts(self),
            settings=self.settings,
            parent=self,
        ).start()

        self.pages = QStackedWidget(self)
        self.login_view = LoginView(self.controller)
        self.files_view = FilesView(self.controller)
        self.pages.addWidget(self.login_view)
        self.pages.addWidget(self.files_view)
        self.setCentralWidget(self.pages)

        self.controller.authenticated_changed.connect(self._on_authenticated)
        self.controller.status_changed.connect(self._set_status)
        self.statusBar().showMessage("Ready")
        self._apply_pointer_cursors()

        self.controller.try_auto_login()

    def _apply_pointer_cursors(self) -> None:
        for btn in self.findChildren(QPushButton):
            btn.setCursor(Qt.PointingHandCursor)
        for btn in self.findChildren(QToolButton):
            btn.setCursor(Qt.PointingHandCursor)

    def _on_authenticated(self, authenticated: bool) -> None:
        self.pages.setCurrentWidget(self.files_view if authenticated else self.login_view)

    def _set_status(self, text: str) -> None:
        self.statusBar().showMessage(text)

    def closeEvent(self, event) -> None:
        self.controller.close()
        client = getattr(self.backend, "client", None)
        if client is not None:
            client.close()
        super().closeEvent(event)
