from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

Json = Dict[str, Any]


# PUBLIC_INTERFACE
class ApiError(Exception):
    """
    A failed API call, carrying the fields of the server's error envelope.
    """

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: Optional[int] = None,
        details: Optional[List[Dict[str, str]]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or []

    @classmethod
    def from_response(cls, response: httpx.Response, fallback: str) -> "ApiError":
        """Build an ApiError from an error response, using fallback when the body is not an envelope."""
        try:
            body = response.json()
        except ValueError:
            body = None
        error = body.get("error") if isinstance(body, dict) else None
        if not isinstance(error, dict):
            return cls(fallback, status_code=response.status_code)
        return cls(
            error.get("message") or fallback,
            code=error.get("code") or "INTERNAL_ERROR",
            status_code=response.status_code,
            details=error.get("details"),
        )


# PUBLIC_INTERFACE
class ApiClient:
    """
    Thin wrapper over the HTTP API returning the unwrapped ``data`` payloads.

    Any ``httpx.Client`` works, including FastAPI's ``TestClient``.
    """

    def __init__(self, http: httpx.Client) -> None:
        self._http = http

    @classmethod
    def connect(cls, base_url: str, timeout: float = 10.0) -> "ApiClient":
        return cls(httpx.Client(base_url=base_url, timeout=timeout))

    def close(self) -> None:
        self._http.close()

    def _request(self, method: str, url: str, fallback: str, **kwargs: Any) -> Any:
        try:
            response = self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise ApiError(fallback) from exc
        if response.is_error:
            raise ApiError.from_response(response, fallback)
        if response.status_code == 204:
            return None
        return response.json()["data"]

    # Todos

    def list_todos(self, params: Optional[Dict[str, str]] = None) -> Any:
        """Return a list of todos, or {"grouped": [...]} when groupByCategory is set."""
        return self._request("GET", "/api/todos", "Failed to fetch todos", params=params or {})

    def get_todo(self, todo_id: int) -> Json:
        return self._request("GET", f"/api/todos/{todo_id}", "Failed to fetch todo")

    def create_todo(self, payload: Json) -> Json:
        return self._request("POST", "/api/todos", "Failed to create todo", json=payload)

    def update_todo(self, todo_id: int, payload: Json) -> Json:
        return self._request("PUT", f"/api/todos/{todo_id}", "Failed to update todo", json=payload)

    def delete_todo(self, todo_id: int) -> None:
        self._request("DELETE", f"/api/todos/{todo_id}", "Failed to delete todo")

    def toggle_todo(self, todo_id: int) -> Json:
        return self._request("PATCH", f"/api/todos/{todo_id}/toggle", "Failed to toggle todo")

    # Categories

    def list_categories(self) -> List[Json]:
        return self._request("GET", "/api/categories", "Failed to fetch categories")

    def create_category(self, name: str) -> Json:
        return self._request("POST", "/api/categories", "Failed to create category", json={"name": name})

    def update_category(self, category_id: int, name: str) -> Json:
        return self._request(
            "PUT", f"/api/categories/{category_id}", "Failed to update category", json={"name": name}
        )

    def delete_category(self, category_id: int) -> None:
        self._request("DELETE", f"/api/categories/{category_id}", "Failed to delete category")
