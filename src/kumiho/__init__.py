"""
Kumiho resilient API access.

One-shot calls go through KumihoApiClient (signed headers, classified
retries under a time budget); long-lived event delivery goes through
StreamingConsumer (SSE, resumable cursor, client-side filters).
"""

from kumiho.api_client import KumihoApiClient, RequestSpec
from kumiho.credentials import (
    CredentialResolver,
    Credentials,
    EnvCredentialSource,
    StaticCredentialSource,
)
from kumiho.signing import RequestSigner, SignedHeaders, stable_idempotency_key
from kumiho.stream import (
    EventFilterPipeline,
    FilterConfig,
    QueueSink,
    StreamAction,
    StreamingConsumer,
    TriggerType,
)

__all__ = [
    "CredentialResolver",
    "Credentials",
    "EnvCredentialSource",
    "EventFilterPipeline",
    "FilterConfig",
    "KumihoApiClient",
    "QueueSink",
    "RequestSigner",
    "RequestSpec",
    "SignedHeaders",
    "StaticCredentialSource",
    "StreamAction",
    "StreamingConsumer",
    "TriggerType",
    "stable_idempotency_key",
]
