from typing import List, Tuple

from .models import ROOT_DIRECTORY_ID


class NavigationStack:
    """Directories visited since login, root first, displayed directory last."""

    def __init__(self) -> None:
        self._stack: List[int] = [ROOT_DIRECTORY_ID]

    @property
    def current_directory_id(self) -> int:
        return self._stack[-1]

    @property
    def items(self) -> Tuple[int, ...]:
        return tuple(self._stack)

    @property
    def depth(self) -> int:
        return len(self._stack)

    @property
    def at_root(self) -> bool:
        return len(self._stack) == 1

    def enter(self, directory_id: int) -> None:
        if isinstance(directory_id, bool) or not isinstance(directory_id, int) or directory_id < 0:
            raise ValueError(f"Invalid directory id: {directory_id!r}")
        self._stack.append(directory_id)

    def go_back(self) -> bool:
        if len(self._stack) <= 1:
            return False
        self._stack.pop()
        return True

    def reset(self) -> None:
        self._stack = [ROOT_DIRECTORY_ID]
