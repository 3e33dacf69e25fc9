from typing import Optional

from PySide6.QtWidgets import QFileDialog, QInputDialog, QLineEdit, QMessageBox, QWidget

from ..prompts import Prompts


class QtPrompts(Prompts):
    def __init__(self, parent: Optional[QWidget] = None) -> None:
        self._parent = parent

    def confirm(self, title: str, text: str) -> bool:
        answer = QMessageBox.question(self._parent, title, text)
        return answer == QMessageBox.StandardButton.Yes

    def ask_text(self, title: str, label: str, default: str = "") -> Optional[str]:
        text, ok = QInputDialog.getText(self._parent, title, label, QLineEdit.EchoMode.Normal, default)
        if not ok:
            return None
        return text

    def choose_save_path(self, suggested_name: str) -> Optional[str]:
        path, _ = QFileDialog.getSaveFileName(self._parent, "Save file as", suggested_name)
        return path or None

    def choose_open_path(self) -> Optional[str]:
        path, _ = QFileDialog.getOpenFileName(self._parent, "Select file to upload")
        return path or None
