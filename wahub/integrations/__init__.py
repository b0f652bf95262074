"""External service integrations."""

from wahub.integrations.waha import (
    ChatSummary,
    LastMessage,
    QRCode,
    WahaClient,
    client_for_organization,
)

__all__ = [
    "WahaClient",
    "client_for_organization",
    "ChatSummary",
    "LastMessage",
    "QRCode",
]
