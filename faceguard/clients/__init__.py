"""Client modules for storage and external service integrations."""

from faceguard.clients.descriptor_store import DescriptorStore

from faceguard.clients.recognition_client import (
    RecognitionClient,
    UpstreamResponse
)

__all__ = [
    "DescriptorStore",
    "RecognitionClient",
    "UpstreamResponse"
]
