from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx


class TicketClientError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    @property
    def auth_failed(self) -> bool:
        return self.status_code in {401, 403}


class SupportApiClient:
    """Async client for the ticket endpoints, authenticated with one bearer token."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        api_prefix: str = "/api/v1",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.api_prefix = "/" + api_prefix.strip("/") if api_prefix.strip("/") else ""
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "SupportApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, f"{self.api_prefix}{path}", **kwargs)
        except httpx.HTTPError as exc:
            raise TicketClientError(f"Request to {path} failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            error = body.get("error") if isinstance(body, dict) else None
            if isinstance(error, dict):
                raise TicketClientError(
                    str(error.get("message") or response.reason_phrase),
                    status_code=response.status_code,
                    code=error.get("code"),
                )
            raise TicketClientError(
                f"HTTP {response.status_code}: {response.text.strip()[:500]}",
                status_code=response.status_code,
            )

        if not isinstance(body, dict) or "data" not in body:
            raise TicketClientError("Unexpected response body", status_code=response.status_code)
        return body["data"]

    async def get_ticket(self, ticket_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/tickets/{ticket_id}")

    async def post_message(
        self,
        ticket_id: str,
        content: str,
        files: Sequence[tuple[str, bytes, str | None]] = (),
    ) -> dict[str, Any]:
        if files:
            multipart = [
                ("files", (filename, data, content_type or "application/octet-stream"))
                for filename, data, content_type in files
            ]
            return await self._request("POST", f"/tickets/{ticket_id}/messages", data={"content": content}, files=multipart)
        return await self._request("POST", f"/tickets/{ticket_id}/messages", json={"content": content})

    async def verify_token(self, token: str) -> dict[str, Any]:
        return await self._request("POST", "/tickets/verify", json={"token": token})

    async def list_tickets(
        self,
        *,
        q: str | None = None,
        status: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if q:
            params["q"] = q
        if status:
            params["status"] = status
        return await self._request("GET", "/admin/tickets", params=params)

    async def update_status(self, ticket_id: str, status: str) -> dict[str, Any]:
        return await self._request("PATCH", f"/admin/tickets/{ticket_id}/status", json={"status": status})
