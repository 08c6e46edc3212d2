"""Minimal demonstration of a dry-run conversation with streaming output."""

import asyncio

from chat_core import Conversation


async def main() -> None:
    conversation = Conversation({"dry": True, "stream": True, "context": "Be terse."})
    reply = await conversation.prompt("Hello there, how are you?")
    reply.on_streaming_update(lambda m: print("Agent:", m.content))
    await reply.wait_until_stopped()
    print("Cumulative tokens:", conversation.get_cumulative_size())


if __name__ == "__main__":
    asyncio.run(main())
