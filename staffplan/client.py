from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import httpx

from staffplan.errors import PersistenceUnavailable, StaleMergeDataLoss, StaleWriteConflict
from staffplan.schemas import LockState, MonthlyAllocationItem
from staffplan.store import AllocationStore

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:8000"
DEFAULT_CACHE_PATH = "~/.staffplan/main-data.json"


def _default_cache_path() -> Path:
    return Path(os.getenv("STAFFPLAN_CACHE_PATH", DEFAULT_CACHE_PATH)).expanduser()


class LocalCache:
    """Last main document read from the API. Read fallback only, never written back."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> dict[str, Any] | None:
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable cache at %s", self.path)
            return None

    def store(self, document: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(document), encoding="utf-8")
        except OSError:
            logger.warning("Could not update cache at %s", self.path)


class StorageClient:
    """Calls the planning API. Failures surface once as PersistenceUnavailable, without retries."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        http: httpx.Client | None = None,
        cache: LocalCache | None = None,
        timeout: float = 10.0,
    ):
        if http is None:
            http = httpx.Client(base_url=base_url or os.getenv("STAFFPLAN_API_URL", DEFAULT_API_URL), timeout=timeout)
        self.http = http
        self.cache = cache if cache is not None else LocalCache(_default_cache_path())
        self.read_from_cache = False

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> StorageClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = self.http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise PersistenceUnavailable(f"{method} {url} failed: {exc}") from exc
        if response.status_code == 409:
            detail = _detail(response)
            if isinstance(detail, dict) and detail.get("error") == "stale_write":
                raise StaleWriteConflict(detail.get("clientLastModified", ""), detail.get("currentLastModified"))
            if isinstance(detail, dict) and detail.get("error") == "stale_merge":
                raise StaleMergeDataLoss(detail.get("collection", ""), detail.get("existingCount", 0))
        if response.is_error:
            raise PersistenceUnavailable(f"{method} {url} returned {response.status_code}: {_detail(response)}")
        return response

    def get_main_data(self) -> dict[str, Any]:
        try:
            document = self._request("GET", "/api/main-data").json()
        except PersistenceUnavailable:
            cached = self.cache.load()
            if cached is None:
                raise
            logger.warning("API unavailable, using cached main data from %s", self.cache.path)
            self.read_from_cache = True
            return cached
        self.read_from_cache = False
        self.cache.store(document)
        return document

    def save_main_data(
        self,
        payload: dict[str, Any],
        *,
        allow_deletions: bool = False,
        last_modified: str | None = None,
        bypass_concurrency: bool = False,
    ) -> str | None:
        headers = {
            "X-Allow-Deletions": "true" if allow_deletions else "false",
            "X-Client-Last-Modified": last_modified or "",
        }
        if bypass_concurrency:
            headers["X-Bypass-Concurrency"] = "true"
        response = self._request("POST", "/api/main-data", json=payload, headers=headers)
        return response.json().get("lastModified")

    def get_monthly_allocation(self, month_key: str) -> list[MonthlyAllocationItem]:
        body = self._request("GET", "/api/monthly-allocation", params={"monthKey": month_key}).json()
        return [MonthlyAllocationItem.model_validate(item) for item in body.get("items", [])]

    def set_monthly_allocation(self, month_key: str, items: list[MonthlyAllocationItem]) -> None:
        self._request(
            "POST",
            "/api/monthly-allocation",
            json={"monthKey": month_key, "items": [item.to_json() for item in items]},
        )

    def get_lock_state(self, month_key: str) -> bool:
        body = self._request("GET", "/api/lock-state", params={"monthKey": month_key}).json()
        return bool(body.get("isLocked"))

    def set_lock_state(self, month_key: str, is_locked: bool, locked_by: str | None = None) -> LockState:
        body = self._request(
            "POST",
            "/api/lock-state",
            json={"monthKey": month_key, "isLocked": is_locked, "lockedBy": locked_by},
        ).json()
        return LockState.model_validate(body)

    def load_store(self) -> AllocationStore:
        """Rehydrate an AllocationStore whose saves go back through this client."""
        return AllocationStore.from_document(self.get_main_data(), persist=self.save_main_data)


def _detail(response: httpx.Response) -> Any:
    try:
        body = response.json()
    except ValueError:
        return response.text
    return body.get("detail") if isinstance(body, dict) else body
