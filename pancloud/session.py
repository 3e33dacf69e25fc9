from enum import Enum
from typing import Any, Callable, Optional

from .backend import StorageBackend
from .errors import AuthError, PanError
from .utils import get_logger


class SessionState(Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


def _as_auth_error(exc: Exception) -> AuthError:
    if isinstance(exc, AuthError):
        return exc
    wrapped = AuthError(str(exc) or exc.__class__.__name__)
    wrapped.__cause__ = exc
    return wrapped


class SessionManager:
    """Authentication lifecycle.

    Only two states exist. A failed login or auto-login leaves the state as it
    was. A login attempt is ignored while another login or a logout is
    outstanding, and a second logout is ignored while the first one runs.
    """

    def __init__(self, backend: StorageBackend, runner: Any) -> None:
        self._backend = backend
        self._runner = runner
        self._state = SessionState.UNAUTHENTICATED
        self._username: Optional[str] = None
        self._login_busy = False
        self._logout_busy = False
        self.logger = get_logger("pancloud.session")

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def authenticated(self) -> bool:
        return self._state is SessionState.AUTHENTICATED

    @property
    def username(self) -> Optional[str]:
        return self._username

    @property
    def login_busy(self) -> bool:
        return self._login_busy

    @property
    def logout_busy(self) -> bool:
        return self._logout_busy

    def try_auto_login(
        self,
        on_done: Callable[[bool], None],
        on_error: Callable[[AuthError], None],
    ) -> bool:
        """Returns whether the session is authenticated once this call returns.

        With a background runner the attempt is still pending at that point,
        so ``False`` is returned and the outcome arrives through ``on_done``.
        """
        if self.authenticated:
            return True
        if self._login_busy or self._logout_busy:
            return False
        self._login_busy = True

        def done(ok: Any) -> None:
            self._login_busy = False
            if ok:
                self._state = SessionState.AUTHENTICATED
                self._username = self._backend.username
            self.logger.info("Auto-login %s", "succeeded" if ok else "skipped")
            on_done(bool(ok))

        def failed(exc: Exception) -> None:
            self._login_busy = False
            self.logger.warning("Auto-login failed: %s", exc)
            on_error(_as_auth_error(exc))

        self._runner.run(self._backend.try_auto_login, on_result=done, on_error=failed)
        return self.authenticated

    def login(
        self,
        username: str,
        password: str,
        on_done: Callable[[str], None],
        on_error: Callable[[AuthError], None],
    ) -> bool:
        if self._login_busy or self._logout_busy or self.authenticated:
            return False
        self._login_busy = True

        def done(message: Any) -> None:
            self._login_busy = False
            self._state = SessionState.AUTHENTICATED
            self._username = username
            self.logger.info("Logged in as %s", username)
            on_done(str(message or ""))

        def failed(exc: Exception) -> None:
            self._login_busy = False
            self.logger.warning("Login failed for %s: %s", username, exc)
            on_error(_as_auth_error(exc))

        self._runner.run(lambda: self._backend.login(username, password), on_result=done, on_error=failed)
        return True

    def logout(
        self,
        on_done: Callable[[], None],
        on_error: Callable[[PanError], None],
    ) -> bool:
        if not self.authenticated or self._logout_busy:
            return False
        self._logout_busy = True

        def done(_result: Any) -> None:
            self._logout_busy = False
            self._state = SessionState.UNAUTHENTICATED
            self._username = None
            self.logger.info("Logged out")
            on_done()

        def failed(exc: Exception) -> None:
            self._logout_busy = False
            self.logger.warning("Logout failed: %s", exc)
            on_error(exc if isinstance(exc, PanError) else PanError(str(exc)))

        self._runner.run(self._backend.logout, on_result=done, on_error=failed)
        return True
