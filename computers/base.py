"""Computer contract shared by all computer-use backends."""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple


class Computer(ABC):
    """
    A surface the agent can observe and act on.

    Method names and argument names match the action payloads emitted by the
    ``computer_use_preview`` tool so the agent can dispatch them directly.
    """

    environment: str = "browser"
    dimensions: Tuple[int, int] = (1024, 768)

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def open(self) -> None:
        """Acquire underlying resources."""

    async def close(self) -> None:
        """Release underlying resources."""

    @abstractmethod
    async def screenshot(self) -> str:
        """Return a base64-encoded PNG of the current screen."""

    @abstractmethod
    async def click(self, x: int, y: int, button: str = "left") -> None: ...

    @abstractmethod
    async def double_click(self, x: int, y: int) -> None: ...

    @abstractmethod
    async def scroll(self, x: int, y: int, scroll_x: int, scroll_y: int) -> None: ...

    @abstractmethod
    async def type(self, text: str) -> None: ...

    @abstractmethod
    async def wait(self, ms: int = 1000) -> None: ...

    @abstractmethod
    async def move(self, x: int, y: int) -> None: ...

    @abstractmethod
    async def keypress(self, keys: List[str]) -> None: ...

    @abstractmethod
    async def drag(self, path: List[Dict[str, int]]) -> None: ...

    @abstractmethod
    async def get_current_url(self) -> str: ...

    @abstractmethod
    async def wait_for_download(self, timeout_ms: int) -> Optional[str]:
        """Wait for the next download; return its reference or None on timeout."""
