import asyncio
import hashlib
import time
import uuid
from dataclasses import dataclass, field
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from typing import Dict, List, Optional, Tuple
from popqueue.core.signing import sign

ACCOUNT_ID = "123456789012"


@dataclass
class StoredMessage:
    message_id: str
    body: str
    visible_at: float = 0.0
    receipt_handle: Optional[str] = None
    receive_count: int = 0


@dataclass
class EmulatedQueue:
    name: str
    attributes: Dict[str, str]
    messages: List[StoredMessage] = field(default_factory=list)


class ServiceFault(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class InMemoryQueueService:
    """Visibility-timeout queue semantics: receipt handles per delivery,
    absolute visibility windows and long polling."""

    def __init__(self, secret: str, max_wait: float = 0.2):
        self.secret = secret
        self.max_wait = max_wait
        self.queues: Dict[str, EmulatedQueue] = {}
        self.calls: List[Tuple[str, Dict[str, str]]] = []
        # action -> number of upcoming calls to fail with a 500
        self.faults: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    def _queue(self, name: str) -> EmulatedQueue:
        queue = self.queues.get(name)
        if queue is None:
            raise ServiceFault(
                400,
                "AWS.SimpleQueueService.NonExistentQueue",
                "The specified queue does not exist.",
            )
        return queue

    def create_queue(self, name: str, attributes: Dict[str, str]) -> EmulatedQueue:
        if name not in self.queues:
            self.queues[name] = EmulatedQueue(name, attributes)
        return self.queues[name]

    def delete_queue(self, name: str):
        self._queue(name)
        del self.queues[name]

    async def send(self, name: str, body: str) -> StoredMessage:
        async with self._lock:
            message = StoredMessage(message_id=str(uuid.uuid4()), body=body)
            self._queue(name).messages.append(message)
            return message

    async def _try_receive(self, name: str, visibility: int) -> Optional[StoredMessage]:
        async with self._lock:
            now = time.monotonic()
            for message in self._queue(name).messages:
                if message.visible_at <= now:
                    message.visible_at = now + visibility
                    message.receipt_handle = str(uuid.uuid4())
                    message.receive_count += 1
                    return message
            return None

    async def receive(
        self, name: str, visibility: int, wait: float
    ) -> Optional[StoredMessage]:
        deadline = time.monotonic() + min(wait, self.max_wait)
        while True:
            message = await self._try_receive(name, visibility)
            if message is not None or time.monotonic() >= deadline:
                return message
            await asyncio.sleep(0.01)

    def _by_handle(self, name: str, receipt_handle: str) -> Optional[StoredMessage]:
        for message in self._queue(name).messages:
            if message.receipt_handle == receipt_handle:
                return message
        return None

    async def change_visibility(self, name: str, receipt_handle: str, timeout: int):
        async with self._lock:
            message = self._by_handle(name, receipt_handle)
            if message is None:
                raise ServiceFault(
                    400,
                    "ReceiptHandleIsInvalid",
                    f"The receipt handle {receipt_handle} is not valid.",
                )
            message.visible_at = time.monotonic() + timeout

    async def delete(self, name: str, receipt_handle: str):
        async with self._lock:
            queue = self._queue(name)
            message = self._by_handle(name, receipt_handle)
            if message is not None:
                queue.messages.remove(message)

    def actions(self, action: str) -> List[Dict[str, str]]:
        return [params for name, params in self.calls if name == action]


def _error(fault: ServiceFault) -> JSONResponse:
    return JSONResponse(
        status_code=fault.status_code,
        content={"Error": {"Code": fault.code, "Message": fault.message}},
    )


def build_app(service: InMemoryQueueService) -> FastAPI:
    app = FastAPI(title="Queue service emulator")

    async def dispatch(request: Request, queue_name: Optional[str]):
        params = dict(request.query_params)
        signature = params.pop("Signature", None)
        url = f"{request.url.scheme}://{request.url.netloc}{request.url.path}"
        if signature != sign("GET", url, params, service.secret):
            raise ServiceFault(
                403,
                "SignatureDoesNotMatch",
                "The request signature we calculated does not match the signature you provided.",
            )

        action = params.get("Action", "")
        service.calls.append((action, params))
        if service.faults.get(action):
            service.faults[action] -= 1
            raise ServiceFault(500, "InternalError", "We encountered an internal error.")

        if action == "CreateQueue":
            attributes = {}
            i = 1
            while f"Attribute.{i}.Name" in params:
                attributes[params[f"Attribute.{i}.Name"]] = params[f"Attribute.{i}.Value"]
                i += 1
            queue = service.create_queue(params["QueueName"], attributes)
            base = f"{request.url.scheme}://{request.url.netloc}"
            return {
                "CreateQueueResponse": {
                    "CreateQueueResult": {
                        "QueueUrl": f"{base}/{ACCOUNT_ID}/{queue.name}"
                    }
                }
            }

        if queue_name is None:
            raise ServiceFault(400, "InvalidAction", f"{action} needs a queue URL.")

        if action == "DeleteQueue":
            service.delete_queue(queue_name)
            return {"DeleteQueueResponse": {}}

        if action == "SendMessage":
            message = await service.send(queue_name, params["MessageBody"])
            return {
                "SendMessageResponse": {
                    "SendMessageResult": {
                        "MessageId": message.message_id,
                        "MD5OfMessageBody": hashlib.md5(
                            message.body.encode("utf-8")
                        ).hexdigest(),
                    }
                }
            }

        if action == "ReceiveMessage":
            message = await service.receive(
                queue_name,
                int(params.get("VisibilityTimeout", 30)),
                float(params.get("WaitTimeSeconds", 0)),
            )
            messages = []
            if message is not None:
                messages.append(
                    {
                        "MessageId": message.message_id,
                        "ReceiptHandle": message.receipt_handle,
                        "Body": message.body,
                        "MD5OfBody": hashlib.md5(
                            message.body.encode("utf-8")
                        ).hexdigest(),
                    }
                )
            return {"ReceiveMessageResponse": {"ReceiveMessageResult": {"messages": messages}}}

        if action == "ChangeMessageVisibility":
            await service.change_visibility(
                queue_name, params["ReceiptHandle"], int(params["VisibilityTimeout"])
            )
            return {"ChangeMessageVisibilityResponse": {}}

        if action == "DeleteMessage":
            await service.delete(queue_name, params["ReceiptHandle"])
            return {"DeleteMessageResponse": {}}

        raise ServiceFault(400, "InvalidAction", f"Unknown action {action}.")

    @app.get("/")
    async def root(request: Request):
        try:
            return await dispatch(request, None)
        except ServiceFault as e:
            return _error(e)

    @app.get("/{account_id}/{queue_name}")
    async def queue(account_id: str, queue_name: str, request: Request):
        try:
            return await dispatch(request, queue_name)
        except ServiceFault as e:
            return _error(e)

    return app
