import asyncio
import logging
from typing import Callable, Optional, Set
from popqueue.core.errors import LeaseCallbackFailure
from popqueue.core.interfaces import IQueueTransport
from popqueue.core.models import LeaseState, ReceivedMessage

logger = logging.getLogger(__name__)

RENEW_INTERVAL = 15.0
VISIBILITY_TIMEOUT = 30


class RenewalTimer:
    """Fires ``callback`` every ``interval`` seconds until stopped.

    Ticks are scheduled on their own; a callback that is still running does
    not delay the next one.
    """

    def __init__(self, interval: float, callback):
        self.interval = interval
        self._callback = callback
        self._task: Optional[asyncio.Task] = None
        self.stopped = False

    def start(self):
        if self._task is None and not self.stopped:
            self._task = asyncio.create_task(self._run())

    async def _run(self):
        while not self.stopped:
            await asyncio.sleep(self.interval)
            if self.stopped:
                break
            self._callback()

    def stop(self):
        if self.stopped:
            return
        self.stopped = True
        if self._task is not None:
            self._task.cancel()


class LeaseManager:
    """Holds the lease on one received message until the consumer's task settles.

    While the task runs, the message's visibility window is pushed back to
    ``visibility_timeout`` seconds every ``renew_interval`` seconds. When the
    task finishes the lease ends exactly once: success deletes the message,
    failure or cancellation makes it visible again straight away.
    """

    def __init__(
        self,
        transport: IQueueTransport,
        queue_url: str,
        message: ReceivedMessage,
        task: asyncio.Future,
        renew_interval: float = RENEW_INTERVAL,
        visibility_timeout: int = VISIBILITY_TIMEOUT,
        on_closed: Optional[Callable[["LeaseManager"], None]] = None,
    ):
        if renew_interval * 2 > visibility_timeout:
            raise ValueError(
                "renew_interval must be at most half of visibility_timeout"
            )
        self.transport = transport
        self.queue_url = queue_url
        self.message = message
        self.task = task
        self.visibility_timeout = visibility_timeout
        self.state = LeaseState.ACTIVE
        self.renewals = 0
        self._timer = RenewalTimer(renew_interval, self._renew)
        self._in_flight: Set[asyncio.Task] = set()
        self._terminal: Optional[asyncio.Task] = None
        self._closed = asyncio.Event()
        self._on_closed = on_closed

    @property
    def receipt_handle(self) -> str:
        return self.message.receipt_handle

    def start(self):
        if self.task.done():
            self._on_settled(self.task)
            return
        self._timer.start()
        self.task.add_done_callback(self._on_settled)

    def _renew(self):
        if self.state is not LeaseState.ACTIVE:
            return
        self.renewals += 1
        renewal = asyncio.create_task(
            self.transport.change_visibility(
                self.queue_url, self.receipt_handle, self.visibility_timeout
            )
        )
        self._in_flight.add(renewal)
        renewal.add_done_callback(self._on_renewed)

    def _on_renewed(self, renewal: asyncio.Task):
        self._in_flight.discard(renewal)
        if renewal.cancelled():
            return
        exc = renewal.exception()
        if exc is not None:
            logger.warning(f"Failed to extend lease on {self.receipt_handle}: {exc!r}")

    def _on_settled(self, task: asyncio.Future):
        self._timer.stop()
        if self.state is not LeaseState.ACTIVE:
            return

        if not task.cancelled() and task.exception() is None:
            self.state = LeaseState.COMMITTED
        else:
            self.state = LeaseState.RELEASED
        self._terminal = asyncio.create_task(self._finish(self.state))

    async def _finish(self, state: LeaseState):
        try:
            # A renewal landing after a release would hide the message again.
            if self._in_flight:
                await asyncio.gather(*self._in_flight, return_exceptions=True)

            if state is LeaseState.COMMITTED:
                await self.transport.delete_message(self.queue_url, self.receipt_handle)
                logger.debug(f"Committed {self.receipt_handle}")
            else:
                await self.transport.change_visibility(
                    self.queue_url, self.receipt_handle, 0
                )
                logger.debug(f"Released {self.receipt_handle}")
        except Exception as e:
            failure = LeaseCallbackFailure(
                "delete" if state is LeaseState.COMMITTED else "release",
                self.receipt_handle,
                e,
            )
            logger.error(str(failure))
        finally:
            self._closed.set()
            if self._on_closed is not None:
                self._on_closed(self)

    @property
    def settled(self) -> bool:
        return self.state is not LeaseState.ACTIVE

    def stop(self):
        """Stops renewing without ending the lease; the window runs out on its own.

        Settling the task afterwards no longer commits or releases the message.
        """
        self._timer.stop()
        self.task.remove_done_callback(self._on_settled)
        if self.state is LeaseState.ACTIVE and not self._closed.is_set():
            self._closed.set()
            if self._on_closed is not None:
                self._on_closed(self)

    async def wait_closed(self):
        await self._closed.wait()
