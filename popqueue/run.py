import asyncio
import json
import logging
import argparse
from popqueue.client.queue import QueueClient


async def handle(body, args):
    print(json.dumps(body))
    if args.fail:
        raise RuntimeError("handler asked to fail")


async def consume(received: asyncio.Future, args):
    # The body is only known once pop returns.
    await handle(await received, args)


async def main():
    parser = argparse.ArgumentParser(description="Visibility-timeout queue client")
    parser.add_argument("--queue-url", help="Queue URL (default: $QUEUE_URL)")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Create a queue and print its URL")
    create.add_argument("name")
    create.add_argument(
        "--attribute",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Queue attribute, may be repeated",
    )

    sub.add_parser("delete", help="Delete the queue")

    push = sub.add_parser("push", help="Push a JSON message")
    push.add_argument("message", help="JSON text of the message")

    pop = sub.add_parser("pop", help="Pop messages and print them")
    pop.add_argument("--count", type=int, default=1, help="Messages to pop")
    pop.add_argument(
        "--fail", action="store_true", help="Release messages instead of deleting"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    async with QueueClient.from_env() as client:
        if args.queue_url:
            client.queue_url = args.queue_url

        if args.command == "create":
            attributes = dict(item.split("=", 1) for item in args.attribute)
            print(await client.create_queue(args.name, attributes))
        elif args.command == "delete":
            await client.delete_queue()
        elif args.command == "push":
            print(json.dumps(await client.push(json.loads(args.message))))
        elif args.command == "pop":
            for _ in range(args.count):
                received = asyncio.get_running_loop().create_future()
                work = asyncio.create_task(consume(received, args))
                received.set_result(await client.pop(work))
                try:
                    await work
                except RuntimeError as e:
                    logging.getLogger(__name__).info(f"Released message: {e}")


if __name__ == "__main__":
    asyncio.run(main())
