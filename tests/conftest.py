import httpx
import pytest
import uuid
from emulator import InMemoryQueueService, build_app
from helpers import ENDPOINT, RecordingTransport
from popqueue.client.queue import QueueClient

SECRET = "test-secret"


@pytest.fixture
def service():
    return InMemoryQueueService(SECRET, max_wait=0.2)


@pytest.fixture
async def http_client(service):
    client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=build_app(service)), base_url=ENDPOINT
    )
    yield client
    await client.aclose()


@pytest.fixture
def make_client(http_client):
    def factory(**kwargs) -> QueueClient:
        options = dict(
            access_key_id="test-key",
            secret_access_key=SECRET,
            region="us-east-1",
            endpoint_url=ENDPOINT,
            client=http_client,
        )
        options.update(kwargs)
        return QueueClient(**options)

    return factory


@pytest.fixture
async def queue(make_client):
    client = make_client()
    await client.create_queue(f"content_test_queue_{uuid.uuid4()}")
    yield client
    await client.drain()
    await client.delete_queue()
    await client.close()


@pytest.fixture
def recording_transport():
    return RecordingTransport()
