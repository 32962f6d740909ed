"""Chat adapter contract."""
from typing import Protocol, runtime_checkable


@runtime_checkable
class ChatAdapter(Protocol):
    """A chat platform front end driving sessions through the manager."""

    async def start(self) -> None:
        """Begin receiving updates from the platform."""
        ...

    async def stop(self) -> None:
        ...

    async def send_text(self, chat_id: str, text: str, markdown: bool = True) -> None:
        """Deliver text to a conversation, splitting it to the platform limit."""
        ...
