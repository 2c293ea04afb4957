"""Shared request helpers for API tests."""

from datetime import timedelta
from typing import Any

from httpx import AsyncClient

from app.services import clock

Headers = dict[str, str]


async def item_quantity(client: AsyncClient, headers: Headers, item_id: str) -> int:
    """Read the on-hand quantity of an item through the API."""
    response = await client.get(f"/v1/inventory/{item_id}", headers=headers)
    assert response.status_code == 200
    return response.json()["data"]["quantity"]


async def submit_request(
    client: AsyncClient,
    headers: Headers,
    item_id: str,
    *,
    quantity: int = 2,
    needed_by: str | None = None,
    notes: str = "Circuit lab for week 5",
) -> dict[str, Any]:
    """Create a request and return its payload."""
    default_due = (clock.today() + timedelta(days=1)).isoformat()
    response = await client.post(
        "/v1/requests",
        headers=headers,
        json={
            "item_id": item_id,
            "quantity": quantity,
            "needed_by": needed_by or default_due,
            "notes": notes,
        },
    )
    assert response.status_code == 200, response.text
    return response.json()["data"]


async def approve(
    client: AsyncClient, headers: Headers, request_id: str, **extra: Any
) -> dict[str, Any]:
    """Approve a request and return the transition payload."""
    response = await client.put(
        "/v1/requests",
        headers=headers,
        json={"id": request_id, "status": "approved", **extra},
    )
    assert response.status_code == 200, response.text
    return response.json()["data"]
