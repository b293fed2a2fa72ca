"""
Python client for the candidates API.

Reads (list, get, CV download) go through ``with_retries``: they are retried on
network errors (no response) and 5xx responses with exponential backoff.
Writes are never retried, since a create or upload that reached the server
must not be replayed.
"""
import functools
import json
import logging
import time
from typing import Any, Callable

import httpx

from .. import config

logger = logging.getLogger(__name__)


class ApiClientError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None, payload: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


def is_retryable(exc: Exception) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.RequestError)


def with_retries(
    max_retries: int = 3,
    *,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
    sleep: Callable[[float], None] = time.sleep,
):
    """Retry an idempotent call on ``is_retryable`` errors, doubling the delay each time."""

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return fn(*args, **kwargs)
                except (httpx.RequestError, httpx.HTTPStatusError) as e:
                    if not is_retryable(e) or attempt >= max_retries:
                        raise
                    backoff = min(max_delay, base_delay * (2**attempt))
                    logger.warning("%s failed (%s); retrying in %.1fs", fn.__name__, type(e).__name__, backoff)
                    sleep(backoff)
            # Unreachable: the last attempt either returns or raises.
            raise AssertionError("retry loop exited without a result")

        return wrapper

    return decorator


def _error_from_response(response: httpx.Response) -> ApiClientError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    message = (isinstance(body, dict) and (body.get("error") or body.get("message"))) or response.reason_phrase
    return ApiClientError(str(message), status_code=response.status_code, payload=body if isinstance(body, dict) else {})


class CandidateApiClient:
    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout_s: float | None = None,
        max_retries: int | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = httpx.Client(
            base_url=(base_url or config.ATS_API_URL).rstrip("/"),
            timeout=config.ATS_API_TIMEOUT_S if timeout_s is None else timeout_s,
            transport=transport,
        )
        retries = config.ATS_API_MAX_RETRIES if max_retries is None else max_retries
        self._retrying = with_retries(retries, sleep=sleep)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "CandidateApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _get(self, path: str, **kwargs) -> httpx.Response:
        @self._retrying
        def _do() -> httpx.Response:
            r = self._client.get(path, **kwargs)
            if r.status_code >= 500:
                r.raise_for_status()
            return r

        try:
            r = _do()
        except httpx.HTTPStatusError as e:
            raise _error_from_response(e.response) from e
        except httpx.RequestError as e:
            raise ApiClientError(f"Request failed: {type(e).__name__}") from e
        if r.status_code >= 400:
            raise _error_from_response(r)
        return r

    def _send_once(self, method: str, path: str, **kwargs) -> dict:
        try:
            r = self._client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            raise ApiClientError(f"Request failed: {type(e).__name__}") from e
        if r.status_code >= 400:
            raise _error_from_response(r)
        return r.json()

    def list_candidates(self, *, page: int = 1, limit: int = 10, search: str | None = None) -> dict:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if search:
            params["search"] = search
        return self._get("/api/candidates", params=params).json()

    def get_candidate(self, candidate_id: int) -> dict:
        return self._get(f"/api/candidates/{candidate_id}").json()

    def download_cv(self, candidate_id: int) -> bytes:
        return self._get(f"/api/candidates/{candidate_id}/cv").content

    def create_candidate(self, data: dict, cv: tuple[str, bytes, str] | None = None) -> dict:
        """``cv`` is ``(filename, content, content_type)``."""
        return self._send_once("POST", "/api/candidates", data=_form_fields(data), files=_cv_files(cv))

    def update_candidate(self, candidate_id: int, data: dict, cv: tuple[str, bytes, str] | None = None) -> dict:
        return self._send_once(
            "PUT", f"/api/candidates/{candidate_id}", data=_form_fields(data), files=_cv_files(cv)
        )

    def delete_candidate(self, candidate_id: int) -> dict:
        return self._send_once("DELETE", f"/api/candidates/{candidate_id}")


def _form_fields(data: dict) -> dict:
    # Nested lists travel as JSON strings inside the form.
    out = {}
    for key, value in data.items():
        if value is None:
            continue
        out[key] = json.dumps(value) if isinstance(value, (list, dict)) else str(value)
    return out


def _cv_files(cv: tuple[str, bytes, str] | None) -> dict | None:
    return {"cv": cv} if cv else None
