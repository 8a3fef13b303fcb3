import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

import httpx
from pydantic import ValidationError

from timesync.config import settings
from timesync.connectors.base import (
    BaseConnector,
    EntryFields,
    RejectedEntry,
    RemoteEntryPage,
    RemoteProject,
    RemoteTimeEntry,
    RemoteUser,
    SyncWindow,
)
from timesync.connectors.errors import (
    AuthError,
    ConnectorError,
    MalformedResponseError,
    NotFoundError,
    RateLimitedError,
    RemoteProtocolError,
    TransientError,
)
from timesync.connectors.rate_limiter import RateLimiter
from timesync.utils.timeutils import to_iso_z

log = logging.getLogger(__name__)


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class ClockifyConnector(BaseConnector):
    """
    Gateway to the Clockify REST API.

    Every remote call goes through ``_request``, which owns:
    - API key authentication (``X-Api-Key`` header)
    - admission control (shared ``RateLimiter``, FIFO, bounded wait)
    - retries with exponential backoff for transient failures only
    - classification of failures into the connector error taxonomy
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        rate_limiter: Optional[RateLimiter] = None,
        max_attempts: Optional[int] = None,
        backoff_base: Optional[float] = None,
        admission_timeout: Optional[float] = None,
        timeout: Optional[float] = None,
        page_size: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not api_key:
            raise ValueError("Clockify API key is required")

        self.base_url = (base_url or settings.clockify_base_url).rstrip("/")
        self.max_attempts = max_attempts or settings.remote_max_attempts
        self.backoff_base = settings.remote_backoff_base_seconds if backoff_base is None else backoff_base
        self.admission_timeout = (
            settings.remote_admission_timeout_seconds if admission_timeout is None else admission_timeout
        )
        self.page_size = page_size or settings.remote_page_size
        self.rate_limiter = rate_limiter or RateLimiter(
            settings.remote_rate_limit_per_second,
            max_waiters=settings.remote_max_waiters,
        )
        self._sleep = sleep

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            follow_redirects=True,
            timeout=timeout or settings.remote_request_timeout_seconds,
            transport=transport,
        )
        self.headers = {
            "X-Api-Key": api_key,
            "Content-Type": "application/json",
        }

        log.info(f"Clockify connector initialized with base URL: {self.base_url}")

    def _backoff(self, attempt: int) -> float:
        return self.backoff_base * (2 ** (attempt - 1))

    async def _send(self, method: str, path: str, **kwargs) -> Any:
        """Single HTTP exchange, classified into the error taxonomy."""
        try:
            log.trace(f"Clockify API {method} {path} params={kwargs.get('params', 'none')}")
            response = await self.client.request(method, path, headers=self.headers, **kwargs)
            log.trace(f"Clockify API response: {response.status_code}")
        except httpx.TimeoutException as e:
            raise TransientError(f"Clockify request timed out for {method} {path}: {e}")
        except httpx.RequestError as e:
            raise TransientError(f"Clockify request error for {method} {path}: {e}")

        status = response.status_code
        if status in (401, 403):
            raise AuthError(
                f"Clockify authentication failed ({status}) for {method} {path}. Check the API key.",
                status_code=status,
            )
        if status == 404:
            raise NotFoundError(f"Clockify resource not found: {method} {path}", status_code=status)
        if status == 429:
            raise RateLimitedError(
                f"Clockify rate limit hit for {method} {path}",
                retry_after=_retry_after(response),
                status_code=status,
            )
        if status >= 500:
            raise TransientError(f"Clockify HTTP {status} for {method} {path}: {response.text[:200]}", status_code=status)
        if status >= 400:
            log.error(f"Clockify rejected {method} {path} ({status}): {response.text}")
            raise RemoteProtocolError(
                f"Clockify rejected {method} {path} with HTTP {status}: {response.text[:200]}",
                status_code=status,
            )

        # Empty responses (e.g. DELETE)
        if status == 204 or not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError:
            raise MalformedResponseError(
                f"Clockify returned malformed JSON for {method} {path}",
                status_code=status,
            )

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """
        Admission + retry loop around ``_send``.

        - AuthError, NotFoundError and RemoteProtocolError propagate at once.
        - TransientError is retried with exponential backoff (1s, 2s, ...).
        - A malformed body is retried once, then surfaces as RemoteProtocolError.
        - A remote 429 waits at least one full admission window before retrying.
        """
        last_error: Optional[ConnectorError] = None
        malformed = 0

        for attempt in range(1, self.max_attempts + 1):
            await self.rate_limiter.acquire(self.admission_timeout)
            try:
                return await self._send(method, path, **kwargs)
            except MalformedResponseError as e:
                malformed += 1
                if malformed > 1:
                    raise RemoteProtocolError(f"{e.message} (after retry)", status_code=e.status_code) from e
                last_error = e
                delay = self._backoff(attempt)
            except TransientError as e:
                last_error = e
                delay = self._backoff(attempt)
            except RateLimitedError as e:
                last_error = e
                delay = max(e.retry_after or 0.0, self.rate_limiter.window)

            if attempt < self.max_attempts:
                log.warning(
                    f"Clockify {method} {path} failed (attempt {attempt}/{self.max_attempts}): "
                    f"{last_error.message}. Retrying in {delay:.1f}s"
                )
                await self._sleep(delay)

        log.error(f"Clockify {method} {path} failed after {self.max_attempts} attempts: {last_error.message}")
        if isinstance(last_error, MalformedResponseError):
            raise RemoteProtocolError(last_error.message, status_code=last_error.status_code) from last_error
        raise last_error

    @staticmethod
    def _parse(factory, data: Any, what: str):
        try:
            return factory(data)
        except (AttributeError, KeyError, TypeError, ValidationError) as e:
            raise RemoteProtocolError(f"Unexpected {what} payload from Clockify: {e}")

    async def authenticate(self) -> RemoteUser:
        data = await self._request("GET", "/user")
        return self._parse(RemoteUser.from_api, data, "user")

    async def get_projects(self, workspace_id: str) -> List[RemoteProject]:
        data = await self._request(
            "GET",
            f"/workspaces/{workspace_id}/projects",
            params={"archived": "false", "page-size": 5000},
        )
        return [self._parse(RemoteProject.from_api, item, "project") for item in (data or [])]

    def _parse_page(self, data: Any) -> RemoteEntryPage:
        if data is None:
            return RemoteEntryPage()
        if not isinstance(data, list):
            raise RemoteProtocolError(f"Expected a list of time entries, got {type(data).__name__}")

        page = RemoteEntryPage()
        for item in data:
            try:
                page.entries.append(self._parse(RemoteTimeEntry.from_api, item, "time entry"))
            except RemoteProtocolError as e:
                external_id = item.get("id") if isinstance(item, dict) else None
                log.warning(f"Skipping unreadable Clockify time entry {external_id or '-'}: {e.message}")
                page.rejected.append(RejectedEntry(external_id=external_id, reason=e.message))
        return page

    async def list_entries(self, workspace_id: str, user_id: str, window: SyncWindow, page: int) -> RemoteEntryPage:
        params = {
            "start": to_iso_z(window.start_at),
            "end": to_iso_z(window.end_at),
            "page": page,
            "page-size": self.page_size,
        }
        data = await self._request("GET", f"/workspaces/{workspace_id}/user/{user_id}/time-entries", params=params)
        result = self._parse_page(data)
        log.debug(
            f"Clockify page {page} returned {len(result.entries)} entries, {len(result.rejected)} unreadable "
            f"({params['start']} → {params['end']})"
        )
        return result

    async def get_entry(self, workspace_id: str, entry_id: str) -> RemoteTimeEntry:
        data = await self._request("GET", f"/workspaces/{workspace_id}/time-entries/{entry_id}")
        return self._parse(RemoteTimeEntry.from_api, data, "time entry")

    async def get_running_entry(self, workspace_id: str, user_id: str) -> Optional[RemoteTimeEntry]:
        data = await self._request(
            "GET",
            f"/workspaces/{workspace_id}/user/{user_id}/time-entries",
            params={"in-progress": "true", "page-size": 1},
        )
        running = [entry for entry in self._parse_page(data).entries if entry.end is None]
        return running[0] if running else None

    async def create_entry(self, workspace_id: str, fields: EntryFields) -> RemoteTimeEntry:
        data = await self._request("POST", f"/workspaces/{workspace_id}/time-entries", json=fields.to_api())
        return self._parse(RemoteTimeEntry.from_api, data, "time entry")

    async def update_entry(self, workspace_id: str, entry_id: str, fields: EntryFields) -> RemoteTimeEntry:
        data = await self._request(
            "PUT", f"/workspaces/{workspace_id}/time-entries/{entry_id}", json=fields.to_api()
        )
        return self._parse(RemoteTimeEntry.from_api, data, "time entry")

    async def delete_entry(self, workspace_id: str, entry_id: str) -> None:
        await self._request("DELETE", f"/workspaces/{workspace_id}/time-entries/{entry_id}")

    async def close(self) -> None:
        await self.client.aclose()
