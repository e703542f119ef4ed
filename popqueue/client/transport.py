import httpx
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from pydantic import ValidationError
from typing import Any, Dict, Optional
from popqueue.core.codec import encode_body
from popqueue.core.errors import (
    ConfigurationError,
    NoMessageAvailable,
    ProtocolViolation,
    ServiceError,
)
from popqueue.core.interfaces import IQueueTransport
from popqueue.core.models import ReceiveEnvelope, ReceivedMessage, ServiceErrorDetail
from popqueue.core.signing import sign

logger = logging.getLogger(__name__)

API_VERSION = "2012-11-05"
VISIBILITY_TIMEOUT = 30
WAIT_TIME_SECONDS = 20


def _timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


class HttpQueueTransport(IQueueTransport):
    def __init__(
        self,
        access_key_id: str,
        secret_access_key: str,
        region: str,
        endpoint_url: Optional[str] = None,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
        visibility_timeout: int = VISIBILITY_TIMEOUT,
        wait_time_seconds: int = WAIT_TIME_SECONDS,
    ):
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.region = region
        self.endpoint_url = (
            endpoint_url or f"https://sqs.{region}.amazonaws.com"
        ).rstrip("/") + "/"
        self.visibility_timeout = visibility_timeout
        self.wait_time_seconds = wait_time_seconds
        self._owns_client = client is None
        # The long poll must fit inside the request timeout.
        self._client = client or httpx.AsyncClient(
            timeout=max(timeout, wait_time_seconds + 10.0)
        )

    def _params(self, action: str, **fields: Any) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "Action": action,
            "AWSAccessKeyId": self.access_key_id,
            "Version": API_VERSION,
            "Timestamp": _timestamp(),
            "SignatureVersion": 2,
            "SignatureMethod": "HmacSHA256",
        }
        params.update(fields)
        return params

    async def _get(self, url: str, params: Dict[str, Any]) -> httpx.Response:
        params["Signature"] = sign("GET", url, params, self.secret_access_key)
        logger.debug(f"{params['Action']} -> {url}")
        return await self._client.get(
            url,
            params={k: str(v) for k, v in params.items()},
            headers={"Accept": "application/json"},
        )

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ProtocolViolation(
                f"response is not JSON (status {response.status_code})"
            ) from e

    def _raise_for_status(self, response: httpx.Response):
        if response.status_code == 200:
            return
        try:
            data = response.json()
        except ValueError:
            data = None
        detail = ServiceErrorDetail()
        if isinstance(data, dict) and isinstance(data.get("Error"), dict):
            try:
                detail = ServiceErrorDetail.model_validate(data["Error"])
            except ValidationError:
                pass
        raise ServiceError(
            detail.message, status_code=response.status_code, code=detail.code
        )

    async def create_queue(
        self, name: str, attributes: Optional[Mapping[str, str]] = None
    ) -> str:
        attributes = attributes or {}
        if not isinstance(attributes, Mapping):
            raise ConfigurationError("attributes must be a mapping of name to value")

        fields: Dict[str, Any] = {"QueueName": name}
        for i, (key, value) in enumerate(sorted(attributes.items()), start=1):
            fields[f"Attribute.{i}.Name"] = key
            fields[f"Attribute.{i}.Value"] = value

        response = await self._get(
            self.endpoint_url, self._params("CreateQueue", **fields)
        )
        self._raise_for_status(response)
        data = self._json(response)
        try:
            return data["CreateQueueResponse"]["CreateQueueResult"]["QueueUrl"]
        except (KeyError, TypeError) as e:
            raise ProtocolViolation("CreateQueue response has no QueueUrl") from e

    async def delete_queue(self, queue_url: str):
        response = await self._get(queue_url, self._params("DeleteQueue"))
        self._raise_for_status(response)

    async def send_message(self, queue_url: str, body: Any) -> Dict[str, Any]:
        response = await self._get(
            queue_url,
            self._params("SendMessage", MessageBody=encode_body(body), DelaySeconds=0),
        )
        self._raise_for_status(response)
        return self._json(response)

    async def receive_message(self, queue_url: str) -> ReceivedMessage:
        response = await self._get(
            queue_url,
            self._params(
                "ReceiveMessage",
                MaxNumberOfMessages=1,
                VisibilityTimeout=self.visibility_timeout,
                WaitTimeSeconds=self.wait_time_seconds,
            ),
        )
        self._raise_for_status(response)
        data = self._json(response)
        if data is None:
            raise NoMessageAvailable()
        if not isinstance(data, dict):
            raise ProtocolViolation(f"unexpected receive response: {data!r}")

        try:
            messages = ReceiveEnvelope.model_validate(data).messages()
        except ValidationError as e:
            raise ProtocolViolation(f"malformed receive response: {e}") from e

        if not messages:
            raise NoMessageAvailable()
        if len(messages) != 1:
            raise ProtocolViolation(
                f"asked for one message at a time, got {len(messages)}"
            )
        return messages[0]

    async def change_visibility(
        self, queue_url: str, receipt_handle: str, timeout: int
    ):
        response = await self._get(
            queue_url,
            self._params(
                "ChangeMessageVisibility",
                ReceiptHandle=receipt_handle,
                VisibilityTimeout=timeout,
            ),
        )
        self._raise_for_status(response)

    async def delete_message(self, queue_url: str, receipt_handle: str):
        response = await self._get(
            queue_url, self._params("DeleteMessage", ReceiptHandle=receipt_handle)
        )
        self._raise_for_status(response)

    async def close(self):
        if self._owns_client:
            await self._client.aclose()
