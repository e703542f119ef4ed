import asyncio
from typing import Any, Dict, List, Optional, Tuple
from popqueue.core.errors import NoMessageAvailable
from popqueue.core.interfaces import IQueueTransport
from popqueue.core.models import ReceivedMessage

ENDPOINT = "http://sqs.test"


class RecordingTransport(IQueueTransport):
    """Stands in for the service, recording per-message calls."""

    def __init__(self, delay: float = 0.0, fail: Optional[str] = None):
        self.delay = delay
        self.fail = fail
        self.calls: List[Tuple[str, str, Any]] = []
        self.inbox: List[ReceivedMessage] = []

    async def _call(self, action: str, receipt_handle: str, value: Any = None):
        self.calls.append((action, receipt_handle, value))
        if self.delay:
            await asyncio.sleep(self.delay)
        if action == self.fail:
            raise RuntimeError(f"{action} exploded")

    def terminal_calls(self) -> List[Tuple[str, str, Any]]:
        return [
            call
            for call in self.calls
            if call[0] == "delete" or (call[0] == "visibility" and call[2] == 0)
        ]

    def renewals(self) -> List[Tuple[str, str, Any]]:
        return [c for c in self.calls if c[0] == "visibility" and c[2] != 0]

    async def create_queue(self, name, attributes=None) -> str:
        return f"{ENDPOINT}/1/{name}"

    async def delete_queue(self, queue_url):
        pass

    async def send_message(self, queue_url, body) -> Dict[str, Any]:
        return {}

    async def receive_message(self, queue_url) -> ReceivedMessage:
        if not self.inbox:
            await asyncio.sleep(0)
            raise NoMessageAvailable()
        return self.inbox.pop(0)

    async def change_visibility(self, queue_url, receipt_handle, timeout):
        await self._call("visibility", receipt_handle, timeout)

    async def delete_message(self, queue_url, receipt_handle):
        await self._call("delete", receipt_handle)

    async def close(self):
        pass

