from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional
from .models import ReceivedMessage


class IQueueTransport(ABC):
    @abstractmethod
    async def create_queue(
        self, name: str, attributes: Optional[Mapping[str, str]] = None
    ) -> str:
        """Creates a queue and returns its URL."""
        pass

    @abstractmethod
    async def delete_queue(self, queue_url: str):
        pass

    @abstractmethod
    async def send_message(self, queue_url: str, body: Any) -> Dict[str, Any]:
        """Sends ``body`` and returns the service acknowledgement."""
        pass

    @abstractmethod
    async def receive_message(self, queue_url: str) -> ReceivedMessage:
        """Long-polls for a single message.

        Raises NoMessageAvailable when the wait elapses empty-handed.
        """
        pass

    @abstractmethod
    async def change_visibility(
        self, queue_url: str, receipt_handle: str, timeout: int
    ):
        """Sets the remaining invisibility window of a delivery."""
        pass

    @abstractmethod
    async def delete_message(self, queue_url: str, receipt_handle: str):
        pass

    @abstractmethod
    async def close(self):
        pass
