"""Relay of completion deltas to the outbound response stream."""
import json
from typing import AsyncIterable, AsyncIterator

from models.chat import ContentDelta, StreamMetadata

FRAME_TERMINATOR = "\n\n"


def encode_metadata_frame(metadata: StreamMetadata) -> str:
    """JSON metadata frame followed by the frame terminator."""
    return json.dumps({"metadata": metadata.to_dict()}) + FRAME_TERMINATOR


async def relay(
    metadata: StreamMetadata,
    deltas: AsyncIterable[ContentDelta],
) -> AsyncIterator[str]:
    """
    Re-emit a delta stream as outbound text frames.

    The metadata frame is yielded before the first delta is requested, so the
    caller can correlate the response even while the model is still silent.
    Empty deltas produce no frame. Errors from ``deltas`` propagate unchanged
    after whatever frames were already yielded.
    """
    yield encode_metadata_frame(metadata)

    async for delta in deltas:
        if delta.text:
            yield delta.text
