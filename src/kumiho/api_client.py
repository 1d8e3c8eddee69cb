"""Kumiho REST API client with classified retries under a wall-clock budget.

Each call runs the state machine

    Idle -> Attempting -> Success
                       -> Classifying -> Retrying -> Attempting
                                      -> Failed

Retry decisions come from classify_failure(); backoff from RetryConfig.
Per-call RetryState is never shared, so concurrent calls are independent.
"""

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from core.errors.classifiers import (
    AttemptFailure,
    ClassifiedError,
    HttpFailure,
    TransportFailure,
    classify_failure,
    transport_code_for,
)
from core.errors.exceptions import (
    RequestError,
    RetryBudgetExceeded,
    TransportError,
    UpstreamError,
    ValidationError,
)
from core.logging.context_managers import OperationContext
from core.resilience.retry import RetryConfig, RetryState
from core.security.sanitization import sanitize_error_message
from core.types import CredentialSource
from kumiho import metrics
from kumiho.credentials import CredentialResolver, Credentials
from kumiho.helpers import (
    DEFAULT_LIMIT,
    apply_return_all_limit_to_array_property,
    normalize_metadata,
)
from kumiho.signing import RequestSigner, SignedHeaders

logger = logging.getLogger(__name__)

ALLOWED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})

DEFAULT_TIMEOUT_MS = 60000
DEFAULT_RETRY_BUDGET_MS = 60000
DEFAULT_MAX_ATTEMPTS = 5


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _normalize_params(params: Mapping[str, Any] | None) -> dict[str, Any]:
    """Drop None values so absent parameters are not sent."""
    if not params:
        return {}
    return {key: value for key, value in params.items() if value is not None}


@dataclass(frozen=True)
class RequestSpec:
    """One logical API call. Immutable once constructed."""

    method: str
    path: str
    params: dict[str, Any] = field(default_factory=dict)
    body: Any = None
    correlation_id: str | None = None
    idempotency_key: str | None = None
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    retry_budget_ms: int = DEFAULT_RETRY_BUDGET_MS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def __post_init__(self):
        method = str(self.method).upper()
        if method not in ALLOWED_METHODS:
            raise ValidationError(
                f"Unsupported HTTP method '{self.method}'",
                context={"allowed": sorted(ALLOWED_METHODS)},
            )
        if not self.path.startswith("/"):
            raise ValidationError(f"Request path must start with '/': {self.path}")
        for name in ("timeout_ms", "retry_budget_ms", "max_attempts"):
            if int(getattr(self, name)) <= 0:
                raise ValidationError(f"{name} must be positive, got {getattr(self, name)}")

        object.__setattr__(self, "method", method)
        object.__setattr__(self, "params", _normalize_params(self.params))

    def query_items(self) -> list[tuple[str, str]]:
        """Query parameters as (key, value) pairs; list values repeat the key."""
        items: list[tuple[str, str]] = []
        for key, value in self.params.items():
            if isinstance(value, (list, tuple)):
                items.extend((key, _query_value(v)) for v in value if v is not None)
            else:
                items.append((key, _query_value(value)))
        return items


def decode_success_body(raw: bytes) -> dict[str, Any]:
    """
    Decode a 2xx response body.

    JSON objects are returned as-is; any other body (scalar, list, empty,
    non-JSON text) is wrapped as {"value": ...}.
    """
    if not raw or not raw.strip():
        return {"value": None}
    text = raw.decode("utf-8", errors="replace")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return {"value": text}
    if isinstance(parsed, dict):
        return parsed
    return {"value": parsed}


class KumihoApiClient:
    """
    Async client for the Kumiho REST API.

    Credentials are resolved on every call so rotated tokens are picked up.
    The clock and sleep are injectable so retry timing can be tested
    without real waits.

    Usage:
        async with KumihoApiClient(EnvCredentialSource()) as client:
            me = await client.whoami()
    """

    def __init__(
        self,
        credential_source: CredentialSource,
        retry_config: RetryConfig | None = None,
        request_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        session: aiohttp.ClientSession | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.resolver = CredentialResolver(credential_source)
        self.retry_config = retry_config or RetryConfig()
        self.request_timeout_ms = int(request_timeout_ms)
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_config(cls, config, **kwargs) -> "KumihoApiClient":
        """Build a client from a KumihoConfig (credentials and retry defaults)."""
        return cls(
            config,
            retry_config=config.retry_config(),
            request_timeout_ms=config.request_timeout_ms,
            **kwargs,
        )

    async def __aenter__(self) -> "KumihoApiClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            await asyncio.sleep(0)
        self._session = None

    @property
    def session(self) -> aiohttp.ClientSession | None:
        return self._session

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        correlation_id: str | None = None,
        idempotency_key: str | None = None,
        timeout_ms: int | None = None,
        retry_budget_ms: int | None = None,
        max_attempts: int | None = None,
    ) -> dict[str, Any]:
        """
        Execute one logical call with classified retries.

        Returns:
            JSON object body, or {"value": raw} for any other 2xx body

        Raises:
            ValidationError: Bad credentials or request spec (before any I/O)
            UpstreamError: Non-retryable or final non-2xx response
            TransportError: Non-retryable or final transport failure
            RetryBudgetExceeded: Wall-clock budget ran out between attempts
        """
        spec = RequestSpec(
            method=method,
            path=path,
            params=dict(params or {}),
            body=body,
            correlation_id=correlation_id,
            idempotency_key=idempotency_key,
            timeout_ms=self.request_timeout_ms if timeout_ms is None else timeout_ms,
            retry_budget_ms=(
                int(self.retry_config.budget_seconds * 1000)
                if retry_budget_ms is None
                else retry_budget_ms
            ),
            max_attempts=self.retry_config.max_attempts if max_attempts is None else max_attempts,
        )
        return await self.execute(spec)

    async def execute(self, spec: RequestSpec) -> dict[str, Any]:
        credentials = self.resolver.resolve()
        signed = RequestSigner(credentials).sign(
            spec.method,
            spec.path,
            params=spec.params or None,
            body=spec.body,
            correlation_id=spec.correlation_id,
            idempotency_key=spec.idempotency_key,
        )
        request_context = self._request_context(spec, credentials, signed)
        url = f"{credentials.base_url}{spec.path}"

        await self._ensure_session()
        state = RetryState(budget_ms=spec.retry_budget_ms, clock=self._clock)

        with OperationContext(
            logger,
            "kumiho_request",
            http_method=spec.method,
            api_path=spec.path,
            correlation_id=signed.correlation_id,
        ) as op:
            while True:
                if state.budget_exhausted:
                    metrics.record_request_attempt(spec.method, "budget_exceeded")
                    logger.warning(
                        "Retry budget exceeded",
                        extra={
                            "http_method": spec.method,
                            "api_path": spec.path,
                            "correlation_id": signed.correlation_id,
                            "budget_ms": spec.retry_budget_ms,
                            "elapsed_ms": round(state.elapsed_ms, 1),
                            "attempt": state.attempt,
                            "total_delay_seconds": round(state.total_delay, 3),
                        },
                    )
                    raise RetryBudgetExceeded(
                        spec.retry_budget_ms,
                        signed.correlation_id,
                        request_context=request_context,
                        attempts=state.attempt,
                    )

                attempt = state.begin_attempt()
                op.add_context(attempt=attempt)

                result, failure, cause = await self._attempt(spec, url, signed)
                if failure is None:
                    metrics.record_request_attempt(spec.method, "success")
                    return result

                classified = classify_failure(failure, signed.correlation_id)
                if not classified.retryable or attempt >= spec.max_attempts:
                    metrics.record_request_attempt(spec.method, "failed")
                    error = self._to_error(failure, classified, request_context)
                    if cause is not None:
                        raise error from cause
                    raise error

                metrics.record_request_attempt(spec.method, "retryable")
                delay = self._retry_delay(attempt, classified)
                self._log_retry(spec, failure, classified, attempt, delay)
                metrics.record_request_retry(spec.method)

                await self._sleep(delay)
                state.record_delay(delay)

    async def _attempt(
        self,
        spec: RequestSpec,
        url: str,
        signed: SignedHeaders,
    ) -> tuple[dict[str, Any] | None, AttemptFailure | None, BaseException | None]:
        """Run a single attempt. Returns (result, failure, cause)."""
        if self._session is None:
            raise RuntimeError("HTTP session not initialized - call _ensure_session() first")

        start_time = self._clock()
        try:
            async with self._session.request(
                spec.method,
                url,
                params=spec.query_items() or None,
                json=spec.body,
                headers=signed.headers,
                timeout=aiohttp.ClientTimeout(total=spec.timeout_ms / 1000),
            ) as response:
                raw = await response.read()
                duration_ms = (self._clock() - start_time) * 1000

                if 200 <= response.status < 300:
                    logger.debug(
                        "API request succeeded",
                        extra={
                            "http_method": spec.method,
                            "api_path": spec.path,
                            "http_status": response.status,
                            "correlation_id": signed.correlation_id,
                            "duration_ms": round(duration_ms, 1),
                        },
                    )
                    return decode_success_body(raw), None, None

                failure = HttpFailure(
                    status=response.status,
                    headers=dict(response.headers),
                    body=raw.decode("utf-8", errors="replace"),
                )
                return None, failure, None

        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            failure = TransportFailure(
                code=transport_code_for(e),
                message=sanitize_error_message(str(e) or type(e).__name__),
            )
            return None, failure, e

    def _retry_delay(self, attempt: int, classified: ClassifiedError) -> float:
        retry_after = classified.retry_after_ms / 1000 if classified.retry_after_ms else None
        return self.retry_config.get_delay(attempt, retry_after=retry_after)

    @staticmethod
    def _request_context(
        spec: RequestSpec, credentials: Credentials, signed: SignedHeaders
    ) -> dict[str, str]:
        return {
            "method": spec.method,
            "path": spec.path,
            "base_url": credentials.base_url,
            **signed.describe(credentials),
        }

    @staticmethod
    def _to_error(
        failure: AttemptFailure,
        classified: ClassifiedError,
        request_context: dict[str, str],
    ) -> RequestError:
        if classified.upstream_code:
            message = f"Kumiho API error: {classified.upstream_code}"
        else:
            message = "Kumiho API request failed"

        if isinstance(failure, TransportFailure):
            if failure.code:
                message = f"{message} ({failure.code})"
            return TransportError(message, classified, request_context=request_context)
        return UpstreamError(message, classified, request_context=request_context)

    @staticmethod
    def _log_retry(
        spec: RequestSpec,
        failure: AttemptFailure,
        classified: ClassifiedError,
        attempt: int,
        delay: float,
    ) -> None:
        delay_source = (
            "retry_after"
            if classified.retry_after_ms and classified.retry_after_ms / 1000 >= delay
            else "backoff"
        )
        logger.warning(
            f"Retrying request after retryable failure "
            f"(attempt {attempt}/{spec.max_attempts}): delay={delay:.2f}s",
            extra={
                "http_method": spec.method,
                "api_path": spec.path,
                "correlation_id": classified.correlation_id,
                "attempt": attempt,
                "max_attempts": spec.max_attempts,
                "delay_seconds": round(delay, 3),
                "delay_source": delay_source,
                "http_status": classified.http_status,
                "transport_code": failure.code if isinstance(failure, TransportFailure) else None,
                "error_code": classified.upstream_code,
            },
        )

    # =========================================================================
    # Endpoint helpers
    # =========================================================================

    async def whoami(self, **kwargs: Any) -> dict[str, Any]:
        """Tenant identity for the configured credentials (credential check)."""
        return await self.request("GET", "/api/v1/tenant/whoami", **kwargs)

    async def resolve_kref(
        self,
        kref: str,
        revision_number: int | None = None,
        tag: str | None = None,
        artifact: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Resolve a kref URI to its location and metadata."""
        if not kref or not kref.strip():
            raise ValidationError("kref is required")
        params = {
            "kref": kref.strip(),
            "r": revision_number or None,
            "t": tag or None,
            "a": artifact or None,
        }
        return await self.request("GET", "/api/v1/resolve", params=params, **kwargs)

    async def list_projects(
        self,
        return_all: bool = False,
        limit: Any = DEFAULT_LIMIT,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """List projects, truncated to limit unless return_all is set."""
        result = await self.request("GET", "/api/v1/projects", **kwargs)
        return apply_return_all_limit_to_array_property(result, return_all, limit, "value")

    async def create_item(
        self,
        space_path: str,
        item_name: str,
        kind: str,
        metadata: Any = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Create an item in a space.

        metadata may be a dict or a JSON object string; values are sent as
        strings and None entries are dropped.
        """
        space_path = (space_path or "").strip()
        item_name = (item_name or "").strip()
        if not space_path or not item_name:
            raise ValidationError("space_path and item_name are required")
        body = {
            "space_path": space_path,
            "item_name": item_name,
            "kind": kind,
            "metadata": normalize_metadata(metadata),
        }
        return await self.request("POST", "/api/v1/items", body=body, **kwargs)
