"""Checkout ledger tests."""

import asyncio
from datetime import timedelta
from uuid import UUID

import pytest
from sqlalchemy.exc import SQLAlchemyError

import app.services.audit as audit_service
from app.services import clock
from app.services.inventory import withdraw_stock
from helpers import approve, item_quantity, submit_request


async def _checkout(client, headers, item_id, due_date, **extra):
    return await client.post(
        "/v1/checkout",
        headers=headers,
        json={
            "action": "checkout",
            "item_id": item_id,
            "due_date": due_date,
            **extra,
        },
    )


async def _checkin(client, headers, checkout_id, **extra):
    return await client.post(
        "/v1/checkout",
        headers=headers,
        json={"action": "checkin", "checkout_id": checkout_id, **extra},
    )


class TestRoundTrip:
    """Redemption followed by check-in."""

    @pytest.mark.asyncio
    async def test_checkin_restores_pre_redemption_quantity(
        self, client, admin_headers, make_user, make_item
    ) -> None:
        """Return exactly the units the redemption removed.

        Parameters
        ----------
        client : AsyncClient
            Test HTTP client.
        admin_headers : dict[str, str]
            Administrator auth headers.
        make_user : Callable
            User factory.
        make_item : Callable
            Item factory.

        Returns
        -------
        None
            Asserts quantity goes 5 -> 3 -> 5.
        """
        student, _ = await make_user()
        item_id = await make_item(quantity=5)
        request = await submit_request(client, student, item_id, quantity=2)
        code = (await approve(client, admin_headers, request["id"]))[
            "authorization_code"
        ]
        redeemed = await client.post(
            "/v1/authorization",
            headers=student,
            json={"action": "use_code", "code": code},
        )
        checkout_id = redeemed.json()["data"]["checkout"]["id"]
        assert await item_quantity(client, admin_headers, item_id) == 3

        response = await _checkin(
            client, student, checkout_id, condition="fair", notes="Scratched probe"
        )

        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert data["new_quantity"] == 5
        assert data["checkout"]["status"] == "returned"
        assert data["checkout"]["condition_in"] == "fair"
        assert data["checkout"]["date_in"] is not None
        assert "Scratched probe" in data["checkout"]["notes"]
        assert await item_quantity(client, admin_headers, item_id) == 5


class TestDirectCheckout:
    """Checkouts without an authorization code."""

    @pytest.mark.asyncio
    async def test_last_unit_marks_item_checked_out(
        self, client, admin_headers, make_user, make_item, tomorrow
    ) -> None:
        """Flip status when stock reaches zero and refuse further checkouts."""
        student, _ = await make_user()
        item_id = await make_item(quantity=2)

        first = await _checkout(client, student, item_id, tomorrow, quantity=2)
        assert first.status_code == 200, first.text
        assert first.json()["data"]["new_quantity"] == 0

        item = await client.get(f"/v1/inventory/{item_id}", headers=admin_headers)
        assert item.json()["data"]["status"] == "checked-out"

        second = await _checkout(client, student, item_id, tomorrow)
        assert second.status_code == 409
        assert await item_quantity(client, admin_headers, item_id) == 0

    @pytest.mark.asyncio
    async def test_quantity_never_goes_negative(
        self, client, admin_headers, make_user, make_item, tomorrow
    ) -> None:
        """Refuse a checkout larger than the stock on hand."""
        student, _ = await make_user()
        item_id = await make_item(quantity=1)

        response = await _checkout(client, student, item_id, tomorrow, quantity=3)

        assert response.status_code == 409
        assert response.json()["error"] == "insufficient_inventory"
        assert await item_quantity(client, admin_headers, item_id) == 1

    @pytest.mark.asyncio
    async def test_concurrent_withdrawals_take_the_last_unit_once(
        self, client, admin_headers, session_factory, make_item
    ) -> None:
        """Let exactly one of two simultaneous withdrawals succeed.

        Parameters
        ----------
        client : AsyncClient
            Test HTTP client.
        admin_headers : dict[str, str]
            Administrator auth headers.
        session_factory : async_sessionmaker[AsyncSession]
            Factory for the racing sessions.
        make_item : Callable
            Item factory.

        Returns
        -------
        None
            Asserts one success, one refusal and an empty shelf.
        """
        item_id = await make_item(quantity=1)
        barrier = asyncio.Barrier(2)

        async def _withdraw() -> int:
            async with session_factory() as session:
                await barrier.wait()
                left = await withdraw_stock(
                    session, item_id=UUID(item_id), quantity=1
                )
                await session.commit()
                return left

        results = await asyncio.gather(_withdraw(), _withdraw(), return_exceptions=True)

        assert sorted(type(result).__name__ for result in results) == [
            "InsufficientInventoryError",
            "int",
        ]
        assert 0 in results
        assert await item_quantity(client, admin_headers, item_id) == 0

    @pytest.mark.asyncio
    async def test_items_under_maintenance_cannot_be_checked_out(
        self, client, make_user, make_item, tomorrow
    ) -> None:
        """Require the item to be available."""
        student, _ = await make_user()
        item_id = await make_item(status="maintenance")

        response = await _checkout(client, student, item_id, tomorrow)

        assert response.status_code == 409
        assert response.json()["message"] == "Item is not available for checkout"

    @pytest.mark.asyncio
    async def test_students_only_check_out_for_themselves(
        self, client, make_user, make_item, tomorrow
    ) -> None:
        """Forbid students from naming another borrower."""
        student, _ = await make_user()
        _, other_id = await make_user()
        item_id = await make_item()

        response = await _checkout(
            client, student, item_id, tomorrow, user_id=other_id
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_staff_check_out_for_a_student(
        self, client, make_user, make_item, tomorrow
    ) -> None:
        """Record the named borrower."""
        staff, _ = await make_user("staff")
        _, student_id = await make_user()
        item_id = await make_item()

        response = await _checkout(
            client, staff, item_id, tomorrow, user_id=student_id
        )

        assert response.status_code == 200
        assert response.json()["data"]["checkout"]["user_id"] == student_id

    @pytest.mark.asyncio
    async def test_due_date_cannot_be_in_the_past(
        self, client, make_user, make_item
    ) -> None:
        """Reject past due dates."""
        student, _ = await make_user()
        item_id = await make_item()
        yesterday = (clock.today() - timedelta(days=1)).isoformat()

        response = await _checkout(client, student, item_id, yesterday)

        assert response.status_code == 422


class TestCheckIn:
    """Returning equipment."""

    @pytest.mark.asyncio
    async def test_checkin_twice_is_refused(
        self, client, admin_headers, make_user, make_item, tomorrow
    ) -> None:
        """Restore stock once only."""
        student, _ = await make_user()
        item_id = await make_item(quantity=3)
        opened = await _checkout(client, student, item_id, tomorrow)
        checkout_id = opened.json()["data"]["checkout"]["id"]

        assert (await _checkin(client, student, checkout_id)).status_code == 200
        again = await _checkin(client, student, checkout_id)

        assert again.status_code == 409
        assert again.json()["message"] == "Checkout already returned"
        assert await item_quantity(client, admin_headers, item_id) == 3

    @pytest.mark.asyncio
    async def test_students_only_check_in_their_own_items(
        self, client, make_user, make_item, tomorrow
    ) -> None:
        """Forbid checking in another student's checkout."""
        owner, _ = await make_user()
        other, _ = await make_user()
        item_id = await make_item()
        opened = await _checkout(client, owner, item_id, tomorrow)
        checkout_id = opened.json()["data"]["checkout"]["id"]

        response = await _checkin(client, other, checkout_id)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_checkout_is_not_found(self, client, make_user) -> None:
        """Return 404 for a missing checkout."""
        student, _ = await make_user()

        response = await _checkin(
            client, student, "00000000-0000-0000-0000-000000000000"
        )

        assert response.status_code == 404


class TestOpenCheckouts:
    """Listing equipment in custody."""

    @pytest.mark.asyncio
    async def test_listing_is_scoped_and_flags_overdue(
        self, client, make_user, make_item, tomorrow
    ) -> None:
        """Show students their own open checkouts only."""
        owner, _ = await make_user()
        other, _ = await make_user()
        staff, _ = await make_user("staff")
        item_id = await make_item()
        await _checkout(client, owner, item_id, tomorrow)

        mine = await client.get("/v1/checkout", headers=owner)
        theirs = await client.get("/v1/checkout", headers=other)
        everyone = await client.get("/v1/checkout", headers=staff)

        assert len(mine.json()["data"]) == 1
        assert mine.json()["data"][0]["is_overdue"] is False
        assert mine.json()["data"][0]["item_name"] == "Oscilloscope"
        assert theirs.json()["data"] == []
        assert len(everyone.json()["data"]) == 1


class TestActivityLogging:
    """Best-effort audit trail."""

    @pytest.mark.asyncio
    async def test_checkout_records_activity(
        self, client, admin_headers, make_user, make_item, tomorrow
    ) -> None:
        """Write an activity entry for each checkout."""
        student, _ = await make_user()
        item_id = await make_item()
        await _checkout(client, student, item_id, tomorrow)

        response = await client.get("/v1/admin/activity", headers=admin_headers)

        actions = [row["action"] for row in response.json()["data"]]
        assert actions[0] == "checkout"

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_abort_checkout(
        self,
        client,
        admin_headers,
        make_user,
        make_item,
        tomorrow,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Swallow activity log errors and keep the checkout."""
        student, _ = await make_user()
        item_id = await make_item(quantity=2)

        def _broken_log(**_: object) -> None:
            raise SQLAlchemyError("activity table unavailable")

        monkeypatch.setattr(audit_service, "ActivityLog", _broken_log)
        response = await _checkout(client, student, item_id, tomorrow)

        assert response.status_code == 200
        assert await item_quantity(client, admin_headers, item_id) == 1
        assert "Activity logging failed for checkout" in caplog.text
