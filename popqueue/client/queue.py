import asyncio
import httpx
import logging
from typing import Any, Awaitable, Dict, Mapping, Optional, Set
from popqueue.client.lease import RENEW_INTERVAL, LeaseManager
from popqueue.client.transport import (
    VISIBILITY_TIMEOUT,
    WAIT_TIME_SECONDS,
    HttpQueueTransport,
)
from popqueue.core.codec import decode_body
from popqueue.core.config import QueueConfig
from popqueue.core.errors import ConfigurationError, NoMessageAvailable, ServiceError
from popqueue.core.interfaces import IQueueTransport

logger = logging.getLogger(__name__)


class QueueClient:
    def __init__(
        self,
        access_key_id: str,
        secret_access_key: str,
        region: str,
        queue_url: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[IQueueTransport] = None,
        visibility_timeout: int = VISIBILITY_TIMEOUT,
        wait_time_seconds: int = WAIT_TIME_SECONDS,
        renew_interval: float = RENEW_INTERVAL,
        retry_backoff: float = 0.5,
        max_retry_backoff: float = 20.0,
    ):
        self.config = QueueConfig.load(
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            region=region,
            queue_url=queue_url,
            endpoint_url=endpoint_url,
            timeout=timeout,
        )
        if renew_interval * 2 > visibility_timeout:
            raise ConfigurationError(
                "renew_interval must be at most half of visibility_timeout"
            )
        self.queue_url = self.config.queue_url
        self.visibility_timeout = visibility_timeout
        self.renew_interval = renew_interval
        self.retry_backoff = retry_backoff
        self.max_retry_backoff = max_retry_backoff
        self.transport = transport or HttpQueueTransport(
            self.config.access_key_id,
            self.config.secret_access_key,
            self.config.region,
            endpoint_url=self.config.endpoint_url,
            timeout=self.config.timeout,
            client=client,
            visibility_timeout=visibility_timeout,
            wait_time_seconds=wait_time_seconds,
        )
        self._leases: Set[LeaseManager] = set()

    @classmethod
    def from_config(cls, config: QueueConfig, **kwargs) -> "QueueClient":
        return cls(**config.model_dump(), **kwargs)

    @classmethod
    def from_env(cls, **kwargs) -> "QueueClient":
        return cls.from_config(QueueConfig.from_env(), **kwargs)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _require_queue_url(self) -> str:
        if not self.queue_url:
            raise ConfigurationError("queueUrl is required")
        return self.queue_url

    async def create_queue(
        self, name: str, attributes: Optional[Mapping[str, str]] = None
    ) -> str:
        queue_url = await self.transport.create_queue(name, attributes)
        self.queue_url = queue_url
        logger.info(f"Created queue {name} at {queue_url}")
        return queue_url

    async def delete_queue(self, queue_url: Optional[str] = None):
        queue_url = queue_url or self._require_queue_url()
        await self.transport.delete_queue(queue_url)
        logger.info(f"Deleted queue {queue_url}")

    async def push(self, message: Any) -> Dict[str, Any]:
        queue_url = self._require_queue_url()
        return await self.transport.send_message(queue_url, message)

    async def pop(self, task: Optional[Awaitable[Any]]) -> Any:
        """Waits for the next message and returns its decoded body.

        ``task`` is the work that will handle the message. The message stays
        invisible to other consumers while ``task`` runs; once it finishes the
        message is deleted on success or put back on the queue on failure.
        There is no internal deadline, wrap the call in ``asyncio.wait_for``
        to bound it.
        """
        queue_url = self._require_queue_url()
        if task is None:
            raise ConfigurationError(
                "pop needs a task to know when it is safe to delete the message"
            )
        try:
            future = asyncio.ensure_future(task)
        except TypeError as e:
            raise ConfigurationError(f"task must be awaitable, got {task!r}") from e

        try:
            return await self._lease_next(queue_url, future)
        except BaseException:
            # A task wrapped here has no other owner to cancel it.
            if future is not task and not future.done():
                future.cancel()
            raise

    async def _lease_next(self, queue_url: str, future: asyncio.Future) -> Any:
        backoff = 0.0
        while True:
            try:
                message = await self.transport.receive_message(queue_url)
            except NoMessageAvailable:
                backoff = 0.0
                continue
            except (ServiceError, httpx.TransportError) as e:
                backoff = min(
                    self.max_retry_backoff, backoff * 2 or self.retry_backoff
                )
                logger.warning(f"Receive failed ({e}), retrying in {backoff:.1f}s")
                await asyncio.sleep(backoff)
                continue

            try:
                body = decode_body(message.body)
            except ValueError:
                logger.exception(
                    f"Undecodable body in {message.receipt_handle}, "
                    f"leaving it to reappear after its visibility window"
                )
                continue

            lease = LeaseManager(
                self.transport,
                queue_url,
                message,
                future,
                renew_interval=self.renew_interval,
                visibility_timeout=self.visibility_timeout,
                on_closed=self._leases.discard,
            )
            self._leases.add(lease)
            lease.start()
            return body

    async def drain(self):
        """Waits for the commit or release of every settled lease."""
        pending = [lease.wait_closed() for lease in list(self._leases) if lease.settled]
        if pending:
            await asyncio.gather(*pending)

    async def close(self):
        await self.drain()
        # Unsettled leases stop renewing and run out on the service side.
        for lease in list(self._leases):
            lease.stop()
        await self.transport.close()
