"""
Base channel abstraction for outbound delivery.

A channel knows how to reach a conversation identity on its platform. The
turn dispatcher only ever talks to this interface, so transports can be
swapped without touching the agent.
"""

from abc import ABC, abstractmethod


class BaseChannel(ABC):
    """Abstract base class for messaging channels.

    To add a new messaging platform:
    1. Create a subclass of BaseChannel
    2. Implement the abstract methods
    3. Pass an instance to the TurnDispatcher
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable channel name."""
        ...

    @property
    def is_connected(self) -> bool:
        """Whether the channel is currently connected."""
        return True

    async def connect(self) -> None:
        """Establish connection to the messaging platform."""

    async def disconnect(self) -> None:
        """Disconnect from the messaging platform."""

    @abstractmethod
    async def send_text(self, identity: str, text: str) -> None:
        """Send a text message to a conversation."""
        ...

    @abstractmethod
    async def send_image(self, identity: str, data: bytes, caption: str = "") -> None:
        """Send an image to a conversation."""
        ...

    async def send_typing_indicator(self, identity: str) -> None:
        """Show a typing/processing indicator. Override if platform supports it."""
