"""Single-request executor: one HTTP call in, one RequestOutcome out."""

from __future__ import annotations

import time
from typing import Any

import httpx
import structlog

from chessload.schemas import OutcomeKind, RequestOutcome

logger = structlog.get_logger(__name__)


class RequestExecutor:
    """Issues requests for one virtual user over a private connection pool.

    Non-2xx responses are ordinary outcomes.  Connection failures, DNS errors
    and timeouts become ``transport_error`` outcomes.  Nothing is retried.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers=headers or {},
            transport=transport,
        )

    def execute(
        self,
        step: str,
        method: str,
        path: str,
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> RequestOutcome:
        method = method.upper()
        request = self._client.build_request(method, path, json=json, headers=headers)
        url = str(request.url)

        start = time.perf_counter()
        try:
            response = self._client.send(request)
        except httpx.RequestError as exc:
            latency_ms = (time.perf_counter() - start) * 1000
            logger.debug("Transport error on %s %s: %s", method, url, exc)
            return RequestOutcome(
                step=step,
                method=method,
                url=url,
                latency_ms=latency_ms,
                kind=OutcomeKind.TRANSPORT_ERROR,
                error=f"{type(exc).__name__}: {exc}",
            )
        latency_ms = (time.perf_counter() - start) * 1000

        return RequestOutcome(
            step=step,
            method=method,
            url=url,
            latency_ms=latency_ms,
            status_code=response.status_code,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> RequestExecutor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
