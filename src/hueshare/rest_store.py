"""Hosted store client for a PostgREST-style REST endpoint."""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from .store import TAG_HIERARCHIES, TENANT_SCOPED, StoreError, TaxonomyStore, filter_columns, require_collection

logger = logging.getLogger(__name__)


def _error_message(response: Optional[requests.Response]) -> str:
    if response is None:
        return ""
    try:
        body = response.json()
    except ValueError:
        return response.text.strip()[:200]
    if isinstance(body, dict):
        for key in ("message", "error", "detail", "hint"):
            if body.get(key):
                return str(body[key])
    return ""


class RestTaxonomyStore(TaxonomyStore):
    """Talks to ``<base_url>/<collection>`` using PostgREST filter syntax."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._session = session

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def request_json(
        self,
        method: str,
        collection: str,
        *,
        operation: str,
        params: Optional[dict[str, str]] = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        url = f"{self.base_url}/{collection}"
        requester = self._session or requests
        try:
            response = requester.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(prefer),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            detail = _error_message(exc.response) or str(exc)
            logger.warning("%s %s failed (%s): %s", method, url, status, detail)
            raise StoreError(
                f"{operation} on {collection} failed: {detail}",
                collection=collection,
                operation=operation,
                status_code=status,
            ) from exc
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise StoreError(
                f"{operation} on {collection} failed: {exc}",
                collection=collection,
                operation=operation,
            ) from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise StoreError(
                f"{operation} on {collection} returned invalid JSON.",
                collection=collection,
                operation=operation,
                status_code=response.status_code,
            ) from exc

    def insert(self, collection: str, record: dict[str, Any], tenant: str | None) -> dict[str, Any] | None:
        values = filter_columns(collection, record)
        if collection in TENANT_SCOPED and tenant and not values.get("organization_id"):
            values["organization_id"] = tenant
        data = self.request_json(
            "POST",
            collection,
            operation="insert",
            params={"select": "*"},
            json=[values],
            prefer="return=representation",
        )
        if isinstance(data, list):
            data = data[0] if data else None
        return data if isinstance(data, dict) else None

    def update(self, collection: str, record_id: str, changes: dict[str, Any]) -> None:
        values = filter_columns(collection, changes)
        values.pop("organization_id", None)
        if not values:
            return
        self.request_json(
            "PATCH",
            collection,
            operation="update",
            params={"id": f"eq.{record_id}"},
            json=values,
            prefer="return=minimal",
        )

    def delete(self, collection: str, record_id: str) -> None:
        require_collection(collection)
        self.request_json(
            "DELETE",
            collection,
            operation="delete",
            params={"id": f"eq.{record_id}"},
            prefer="return=minimal",
        )

    def delete_where(self, collection: str, match: dict[str, str], *, any_of: bool = False) -> None:
        require_collection(collection)
        if not match:
            raise StoreError(f"Refusing to delete every row of {collection}.", collection=collection)
        if any_of and len(match) > 1:
            params = {"or": "(" + ",".join(f"{column}.eq.{value}" for column, value in match.items()) + ")"}
        else:
            params = {column: f"eq.{value}" for column, value in match.items()}
        self.request_json("DELETE", collection, operation="delete_where", params=params, prefer="return=minimal")

    def select_all(self, collection: str, tenant: str, order_by: str = "name") -> list[dict[str, Any]]:
        require_collection(collection)
        if collection == TAG_HIERARCHIES:
            params = {
                "select": "id,tag_id,parent_tag_id,tag:tags!tag_id!inner(organization_id)",
                "tag.organization_id": f"eq.{tenant}",
                "order": order_by,
            }
        else:
            params = {"select": "*", "organization_id": f"eq.{tenant}", "order": order_by}
        data = self.request_json("GET", collection, operation="select", params=params)
        if not isinstance(data, list):
            return []
        rows = [dict(item) for item in data if isinstance(item, dict)]
        if collection == TAG_HIERARCHIES:
            for row in rows:
                row.pop("tag", None)
        return rows
