from typing import Optional

from PySide6.QtCore import Qt
from PySide6.QtWidgets import QFormLayout, QFrame, QLabel, QLineEdit, QPushButton, QVBoxLayout, QWidget

from ...controller import CloudController


class LoginView(QWidget):
    def __init__(self, controller: CloudController, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self._controller = controller

        root = QVBoxLayout(self)
        root.addStretch(1)

        card = QFrame()
        card.setObjectName("loginCard")
        card.setFixedWidth(360)
        card.setStyleSheet(
            "#loginCard { background: #ffffff; border-radius: 10px; border: 1px solid #e6e6e6; }"
        )
        form = QFormLayout(card)
        form.setContentsMargins(20, 20, 20, 20)

        title = QLabel("Sign in")
        title.setStyleSheet("font-size: 18px; font-weight: 600;")
        form.addRow(title)

        self.username_edit = QLineEdit()
        self.username_edit.setPlaceholderText("Phone number or e-mail")
        self.password_edit = QLineEdit()
        self.password_edit.setEchoMode(QLineEdit.EchoMode.Password)
        self.password_edit.returnPressed.connect(self._submit)
        form.addRow("Account", self.username_edit)
        form.addRow("Password", self.password_edit)

        self.login_btn = QPushButton("Log in")
        self.login_btn.setCursor(Qt.PointingHandCursor)
        self.login_btn.setStyleSheet("background: #1d6fd6; color: #ffffff;")
        self.login_btn.clicked.connect(self._submit)
        form.addRow(self.login_btn)

        self.message = QLabel("")
        self.message.setStyleSheet("color: #b00020;")
        self.message.setWordWrap(True)
        form.addRow(self.message)

        root.addWidget(card, alignment=Qt.AlignCenter)
        root.addStretch(1)

        controller.error_raised.connect(self._on_error)
        controller.authenticated_changed.connect(self._on_authenticated)

    def _submit(self) -> None:
        username = self.username_edit.text().strip()
        password = self.password_edit.text()
        if not username or not password:
            self.message.setText("Enter both account and password.")
            return
        self.message.setText("")
        if self._controller.login(username, password):
            self.login_btn.setEnabled(False)

    def _on_error(self, exc: Exception) -> None:
        if not self._controller.login_busy:
            self.login_btn.setEnabled(True)
        if not self._controller.authenticated:
            self.message.setText(str(exc))

    def _on_authenticated(self, authenticated: bool) -> None:
        self.login_btn.setEnabled(True)
        # Credentials are not kept on screen once used or after logout.
        self.password_edit.clear()
        if not authenticated:
            self.username_edit.clear()
