"""Example usage of the conversation session.

This example uploads a receipt photo, assigns its items with a couple of
chat messages and prints the resulting per-person breakdown.
"""

import asyncio
import os
import sys
from pathlib import Path

from splitsmart.integrations import AnthropicBillAssistant
from splitsmart.rendering import render_breakdown, render_message
from splitsmart.session import ConversationSession, SessionState


async def main(image_path: Path):
    """Example of splitting a receipt by chatting."""
    # Initialize the assistant with your API key
    api_key = os.getenv("ANTHROPIC_API_KEY", "your-api-key-here")
    session = ConversationSession(AnthropicBillAssistant(api_key=api_key), timeout=60)

    reply = await session.upload(image_path.read_bytes(), "image/jpeg")
    print(render_message(reply))
    if session.state is not SessionState.READY:
        return

    for text in [
        "Mike had the first item",
        "Alice and Bob shared everything else",
    ]:
        print(render_message(await session.send_message(text)))

    # Allocation is recomputed from the current bill on every call
    print()
    print(render_breakdown(session.allocation(), session.bill.currency))
    for warning in session.warnings():
        print(f"Warning: {warning}")


if __name__ == "__main__":
    asyncio.run(main(Path(sys.argv[1] if len(sys.argv) > 1 else "receipt.jpg")))
