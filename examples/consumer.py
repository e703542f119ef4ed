import asyncio
import random
from popqueue.client.queue import QueueClient


async def work(received: asyncio.Future):
    payload = await received
    # Simulate processing work; the lease is renewed in the background.
    await asyncio.sleep(random.uniform(0.5, 2.0))
    if payload.get("fail"):
        raise RuntimeError(f"could not handle {payload}")


async def main():
    # Credentials, region and QUEUE_URL come from the environment
    consumer = QueueClient.from_env()

    print(f"Consumer started on {consumer.queue_url}. Waiting for messages...")

    try:
        while True:
            received = asyncio.get_running_loop().create_future()
            task = asyncio.create_task(work(received))
            payload = await consumer.pop(task)
            received.set_result(payload)
            print(f"Received: {payload}")

            try:
                await task
                print("Processed, message deleted")
            except RuntimeError as e:
                print(f"Error: {e}, message released for redelivery")
    finally:
        await consumer.close()


if __name__ == "__main__":
    asyncio.run(main())
