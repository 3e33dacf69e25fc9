import faulthandler
import logging
import os
import sys

from PySide6.QtWidgets import QApplication

from ..config import Settings
from ..utils import append_log_line, get_logger
from .qt_app import MainWindow

FAULT_LOG_NAME = "pancloud_fault.log"


def _enable_faulthandler(logger: logging.Logger) -> None:
    path = os.path.join(os.getcwd(), FAULT_LOG_NAME)
    try:
        # Kept open for the life of the process; faulthandler writes to the fd.
        sink = open(path, "a", buffering=1, encoding="utf-8")
    except OSError as exc:
        logger.info("Faulthandler not enabled: %s", exc)
        return
    faulthandler.enable(file=sink, all_threads=True)
    append_log_line(path, "faulthandler enabled")
    logger.info("Native crashes are dumped to %s", path)


def main() -> int:
    settings = Settings.from_env()
    if settings.faulthandler:
        _enable_faulthandler(get_logger("pancloud.qt"))
    app = QApplication(sys.argv)
    app.setApplicationName("Pan Cloud")
    window = MainWindow(settings)
    window.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
