"""Gateway webhook ingestion."""

from wahub.ingestion.events import (
    MessageEvent,
    SessionStatusEvent,
    UnknownEvent,
    WebhookEvent,
    parse_event,
)
from wahub.ingestion.pipeline import (
    ApplyOutcome,
    FailureMode,
    IngestionPipeline,
    IngestResult,
    MessageStore,
)

__all__ = [
    "MessageEvent",
    "SessionStatusEvent",
    "UnknownEvent",
    "WebhookEvent",
    "parse_event",
    "ApplyOutcome",
    "FailureMode",
    "IngestionPipeline",
    "IngestResult",
    "MessageStore",
]
