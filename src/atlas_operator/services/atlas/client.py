"""Atlas Admin API client over requests with digest authentication."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import requests
from requests.auth import HTTPDigestAuth
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
)

from ... import __version__, metrics
from ...connection import Credentials
from ...constants import ATLAS_API_PATH, ATLAS_MEDIA_TYPE
from ...exceptions import AtlasAPIError
from ...tracing import trace_span
from ...utils.rate_limit import rate_limit_atlas

logger = logging.getLogger(__name__)


def _is_transient(e: BaseException) -> bool:
    return isinstance(e, AtlasAPIError) and e.transient


class AtlasHTTPClient:
    """Atlas client for one API version.

    The API version is selected through the versioned media type in Accept,
    e.g. application/vnd.atlas.2025-03-12+json.
    """

    def __init__(
        self,
        base_url: str,
        credentials: Credentials,
        api_version: str,
        timeout: float = 30.0,
        max_attempts: int = 3,
        stop_event: threading.Event | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") + ATLAS_API_PATH
        self.api_version = api_version
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.stop_event = stop_event or threading.Event()

        media_type = ATLAS_MEDIA_TYPE.format(date=api_version)
        self.session = session or requests.Session()
        self.session.auth = HTTPDigestAuth(credentials.public_key, credentials.private_key)
        self.session.headers.update({
            "Accept": media_type,
            "Content-Type": media_type,
            "User-Agent": f"atlas-operator/{__version__}",
        })

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self._request("GET", path, params=params)

    def post(self, path: str, body: Any) -> Any:
        return self._request("POST", path, body=body)

    def patch(self, path: str, body: Any) -> Any:
        return self._request("PATCH", path, body=body)

    def delete(self, path: str) -> Any:
        return self._request("DELETE", path)

    def close(self) -> None:
        self.session.close()

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        """Send one request, retrying transient failures within this pass.

        Raises:
            AtlasAPIError: On an error response or once retries are exhausted
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts) | stop_when_event_set(self.stop_event),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )
        with trace_span("atlas_request", attributes={"http.method": method, "atlas.path": path}):
            for attempt in retrying:
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.info(f"Retrying {method} {path} (attempt {attempt.retry_state.attempt_number})")
                    return self._send(method, path, params, body)

    @rate_limit_atlas
    def _send(self, method: str, path: str, params: dict[str, Any] | None, body: Any) -> Any:
        start_time = time.time()
        result = "error"
        try:
            try:
                response = self.session.request(
                    method,
                    self.base_url + path,
                    params=params,
                    json=body,
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                raise AtlasAPIError(f"{method} {path} failed: {e}") from e

            if response.status_code == 429:
                metrics.rate_limit_hits_total.labels(api_type="atlas").inc()
            if response.status_code >= 400:
                try:
                    payload = response.json()
                except ValueError:
                    payload = None
                raise AtlasAPIError.from_payload(response.status_code, payload)

            result = "success"
            if response.status_code == 204 or not response.content:
                return None
            return response.json()
        finally:
            metrics.api_call_total.labels(api_type="atlas", operation=method, result=result).inc()
            metrics.api_call_duration_seconds.labels(api_type="atlas", operation=method).observe(
                time.time() - start_time
            )
