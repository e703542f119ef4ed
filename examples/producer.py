import asyncio
from popqueue.client.queue import QueueClient


async def main():
    producer = QueueClient.from_env()
    if not producer.queue_url:
        await producer.create_queue("demo-queue")

    print(f"Sending messages to {producer.queue_url}...")
    for i in range(10):
        ack = await producer.push({"text": f"Hello world {i}", "value": i})
        message_id = ack["SendMessageResponse"]["SendMessageResult"]["MessageId"]
        print(f"Sent message {i} with ID: {message_id}")

    await producer.close()


if __name__ == "__main__":
    asyncio.run(main())
