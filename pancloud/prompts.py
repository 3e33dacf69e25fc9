from abc import ABC, abstractmethod
from typing import Optional


class Prompts(ABC):
    """User interaction the controller needs, provided by the presentation layer."""

    @abstractmethod
    def confirm(self, title: str, text: str) -> bool:
        ...

    @abstractmethod
    def ask_text(self, title: str, label: str, default: str = "") -> Optional[str]:
        """Return the entered text, or None when the user cancels."""

    @abstractmethod
    def choose_save_path(self, suggested_name: str) -> Optional[str]:
        ...

    @abstractmethod
    def choose_open_path(self) -> Optional[str]:
        ...
