from __future__ import annotations

import json
from enum import Enum
from typing import AsyncIterator

from coordinator.coordinator import ClassificationEvent
from coordinator.errors import LoadFailure
from coordinator.stream import ClassificationStream


class EventType(str, Enum):
    classification = "classification"
    load_error = "load_error"


def format_event(type: EventType, data: str) -> str:
    return f"event: {type.value}\ndata: {data}\n\n"


def load_error_payload(failure: LoadFailure) -> dict:
    return {"source": failure.source, "message": str(failure)}


async def stream_events(stream: ClassificationStream) -> AsyncIterator[str]:
    """
    SSE frames for every classification replacement and load failure.
    """
    async with stream:
        async for item in stream:
            if isinstance(item, ClassificationEvent):
                yield format_event(EventType.classification, json.dumps(item.to_payload()))
            elif isinstance(item, LoadFailure):
                yield format_event(EventType.load_error, json.dumps(load_error_payload(item)))
