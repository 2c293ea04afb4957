"""Synchronous Python SDK client."""

from __future__ import annotations

import os
from datetime import date, datetime
from time import sleep
from typing import Any
from uuid import UUID

import httpx

from lab_inventory.exceptions import (
    CodeUnavailableError,
    InsufficientInventoryError,
    InvalidCodeError,
    LabInventoryAPIError,
    LabInventoryAuthError,
    LabInventoryConflictError,
    LabInventoryNotFoundError,
    LabInventoryPermissionError,
    LabInventoryValidationError,
)
from lab_inventory.types import (
    CheckoutInfo,
    CodeInfo,
    CodePreview,
    RequestInfo,
    TransitionResult,
)

_CODE_ERRORS = {
    "code_already_used",
    "code_cancelled",
    "code_expired",
    "code_not_active",
}


class LabInventoryClient:
    """Client for the lab inventory API.

    Parameters
    ----------
    base_url : str
        Service base URL.
    token : str
        Bearer token of the acting user.
    timeout : float, default=10.0
        Request timeout in seconds.
    max_retries : int, default=2
        Number of retries for transient errors.
    transport : httpx.BaseTransport | None, default=None
        Optional transport for tests or advanced usage.
    """

    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        timeout: float = 10.0,
        max_retries: int = 2,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.token}"},
            timeout=self.timeout,
            transport=transport,
        )

    @classmethod
    def from_env(cls) -> "LabInventoryClient":
        """Build a client from environment variables.

        Expected variables
        ------------------
        LAB_INVENTORY_BASE_URL
            Service base URL. Defaults to ``http://127.0.0.1:8000``.
        LAB_INVENTORY_TOKEN
            Required bearer token.

        Returns
        -------
        LabInventoryClient
            Configured SDK client.
        """
        base_url = os.environ.get("LAB_INVENTORY_BASE_URL", "http://127.0.0.1:8000")
        token = os.environ.get("LAB_INVENTORY_TOKEN")
        if not token:
            raise LabInventoryValidationError(
                "LAB_INVENTORY_TOKEN is required to create the client"
            )
        return cls(base_url=base_url, token=token)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def create_request(
        self, *, item_id: UUID, quantity: int, needed_by: date, notes: str
    ) -> RequestInfo:
        """Submit an equipment request.

        Parameters
        ----------
        item_id : UUID
            Requested item.
        quantity : int
            Units requested.
        needed_by : date
            Date the equipment is needed.
        notes : str
            Purpose of the request, at least ten characters.

        Returns
        -------
        RequestInfo
            New pending request.
        """
        data = self._data(
            "POST",
            "/v1/requests",
            json={
                "item_id": str(item_id),
                "quantity": quantity,
                "needed_by": needed_by.isoformat(),
                "notes": notes,
            },
        )
        return _request_info(data)

    def approve_request(
        self, request_id: UUID, *, expiry_hours: int | None = None
    ) -> TransitionResult:
        """Approve a pending request and receive its authorization code.

        Parameters
        ----------
        request_id : UUID
            Request identifier.
        expiry_hours : int | None, default=None
            Code lifetime override.

        Returns
        -------
        TransitionResult
            Approved request with its code.
        """
        return self._transition(request_id, "approved", expiry_hours=expiry_hours)

    def reject_request(self, request_id: UUID) -> TransitionResult:
        """Reject a pending request."""
        return self._transition(request_id, "rejected")

    def cancel_request(self, request_id: UUID) -> TransitionResult:
        """Cancel a request."""
        return self._transition(request_id, "cancelled")

    def validate_code(self, code: str) -> CodePreview:
        """Check a code and preview the checkout it unlocks.

        Parameters
        ----------
        code : str
            Authorization code.

        Returns
        -------
        CodePreview
            Item, quantity and due date bound to the code.
        """
        data = self._data(
            "GET",
            "/v1/authorization",
            params={"action": "validate_code", "code": code},
        )
        return CodePreview(
            code=data["code"],
            request_id=UUID(data["request_id"]),
            item_id=UUID(data["item_id"]),
            item_name=data["item_name"],
            user_name=data["user_name"],
            quantity=data["quantity"],
            due_date=date.fromisoformat(data["due_date"]),
            expires_at=_parse_datetime(data["expires_at"]),
            available_quantity=data["available_quantity"],
        )

    def redeem_code(self, code: str, *, notes: str = "") -> CheckoutInfo:
        """Exchange a code for a checkout.

        Parameters
        ----------
        code : str
            Authorization code.
        notes : str, default=""
            Checkout notes.

        Returns
        -------
        CheckoutInfo
            New checkout.
        """
        data = self._data(
            "POST",
            "/v1/authorization",
            json={"action": "use_code", "code": code, "notes": notes},
        )
        return _checkout_info(data)

    def cancel_code(self, code: str, *, reason: str) -> CodeInfo:
        """Cancel an active code.

        Parameters
        ----------
        code : str
            Authorization code.
        reason : str
            Reason recorded with the cancellation.

        Returns
        -------
        CodeInfo
            Cancelled code.
        """
        data = self._data(
            "PUT",
            "/v1/authorization",
            json={"action": "cancel_code", "code": code, "reason": reason},
        )
        return _code_info(data)

    def check_in(
        self, checkout_id: UUID, *, condition: str = "good", notes: str = ""
    ) -> CheckoutInfo:
        """Return checked-out equipment.

        Parameters
        ----------
        checkout_id : UUID
            Checkout identifier.
        condition : str, default="good"
            Condition of the equipment.
        notes : str, default=""
            Notes appended to the checkout.

        Returns
        -------
        CheckoutInfo
            Closed checkout.
        """
        data = self._data(
            "POST",
            "/v1/checkout",
            json={
                "action": "checkin",
                "checkout_id": str(checkout_id),
                "condition": condition,
                "notes": notes,
            },
        )
        return _checkout_info(data)

    def list_my_codes(self, *, limit: int = 50, offset: int = 0) -> list[CodeInfo]:
        """List the caller's authorization codes."""
        data = self._data(
            "GET",
            "/v1/authorization",
            params={"action": "my_codes", "limit": limit, "offset": offset},
        )
        return [_code_info(item) for item in data]

    def _transition(
        self, request_id: UUID, status: str, *, expiry_hours: int | None = None
    ) -> TransitionResult:
        payload: dict[str, Any] = {"id": str(request_id), "status": status}
        if expiry_hours is not None:
            payload["expiry_hours"] = expiry_hours
        data = self._data("PUT", "/v1/requests", json=payload)
        expires_at = data.get("expires_at")
        return TransitionResult(
            request=_request_info(data["request"]),
            authorization_code=data.get("authorization_code"),
            expires_at=_parse_datetime(expires_at) if expires_at else None,
        )

    def _data(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and unwrap the ``data`` member of the envelope."""
        return self._request(method, path, **kwargs).json().get("data")

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send an HTTP request with light retry logic.

        Parameters
        ----------
        method : str
            HTTP method.
        path : str
            Relative request path.
        **kwargs : Any
            Additional request arguments.

        Returns
        -------
        httpx.Response
            Successful response.
        """
        attempts = self.max_retries + 1
        last_exception: Exception | None = None
        for attempt in range(attempts):
            try:
                response = self._client.request(method, path, **kwargs)
            except httpx.HTTPError as exc:
                last_exception = exc
                if attempt < self.max_retries:
                    sleep(0.1 * (attempt + 1))
                    continue
                raise LabInventoryAPIError(str(exc)) from exc

            if response.status_code < 400:
                return response
            if _is_transient_response(response) and attempt < self.max_retries:
                sleep(0.1 * (attempt + 1))
                continue
            raise _exception_for_response(response)

        if last_exception is not None:
            raise LabInventoryAPIError(str(last_exception)) from last_exception
        raise LabInventoryAPIError("Request failed")

    def __enter__(self) -> "LabInventoryClient":
        """Enter the client context."""
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        """Close the client on context exit."""
        _ = (exc_type, exc_value, traceback)
        self.close()


def _parse_datetime(value: str) -> datetime:
    """Parse an ISO datetime string."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _optional_datetime(value: str | None) -> datetime | None:
    return _parse_datetime(value) if value is not None else None


def _request_info(data: dict[str, Any]) -> RequestInfo:
    return RequestInfo(
        request_id=UUID(data["id"]),
        item_id=UUID(data["item_id"]),
        item_name=data["item_name"],
        quantity=data["quantity"],
        needed_by=date.fromisoformat(data["needed_by"]),
        status=data["status"],
        code=data.get("code"),
        code_status=data.get("code_status"),
    )


def _code_info(data: dict[str, Any]) -> CodeInfo:
    return CodeInfo(
        code_id=UUID(data["id"]),
        code=data["code"],
        request_id=UUID(data["request_id"]),
        item_name=data["item_name"],
        status=data["status"],
        expires_at=_parse_datetime(data["expires_at"]),
        used_at=_optional_datetime(data.get("used_at")),
        cancel_reason=data.get("cancel_reason"),
    )


def _checkout_info(data: dict[str, Any]) -> CheckoutInfo:
    checkout = data["checkout"]
    return CheckoutInfo(
        checkout_id=UUID(checkout["id"]),
        item_id=UUID(checkout["item_id"]),
        quantity=checkout["quantity"],
        due_date=date.fromisoformat(checkout["due_date"]),
        status=checkout["status"],
        date_in=_optional_datetime(checkout.get("date_in")),
        new_quantity=data["new_quantity"],
    )


def _is_transient_response(response: httpx.Response) -> bool:
    """Return whether a response is worth retrying."""
    return response.status_code in {429, 502, 503, 504}


def _exception_for_response(response: httpx.Response) -> LabInventoryAPIError:
    """Map an error response to a typed SDK exception.

    Parameters
    ----------
    response : httpx.Response
        HTTP response.

    Returns
    -------
    LabInventoryAPIError
        Typed SDK error.
    """
    try:
        data = response.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}
    status_code = response.status_code
    error_code = data.get("error")
    message = data.get("message") or (
        f"Lab inventory request failed with status {status_code}"
    )
    kwargs = {"status_code": status_code, "error_code": error_code}

    if error_code == "invalid_code":
        return InvalidCodeError(message, **kwargs)
    if error_code in _CODE_ERRORS:
        return CodeUnavailableError(message, **kwargs)
    if error_code == "insufficient_inventory":
        return InsufficientInventoryError(message, **kwargs)
    if status_code == 401:
        return LabInventoryAuthError(message, **kwargs)
    if status_code == 403:
        return LabInventoryPermissionError(message, **kwargs)
    if status_code == 404:
        return LabInventoryNotFoundError(message, **kwargs)
    if status_code == 409:
        return LabInventoryConflictError(message, **kwargs)
    if status_code in {400, 422}:
        return LabInventoryValidationError(message, **kwargs)
    return LabInventoryAPIError(message, **kwargs)
