"""Authorization code issuing and redemption tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest
from sqlalchemy import select, update

import app.services.codes as codes_service
from app.errors import CodeAlreadyUsedError, CodeExpiredError, StateConflictError
from app.models.authorization import AuthorizationCode
from app.models.checkout import Checkout
from app.models.enums import Role
from app.models.request import EquipmentRequest
from app.services.auth import CallerContext
from app.services.codes import Redemption, generate_code_for_request, redeem_code
from helpers import approve, item_quantity, submit_request


async def _expire(session_factory, code: str) -> None:
    """Move a code's expiry into the past without touching its status."""
    async with session_factory() as session:
        await session.execute(
            update(AuthorizationCode)
            .where(AuthorizationCode.code == code)
            .values(expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
        )
        await session.commit()


async def _code_row(session_factory, code: str) -> AuthorizationCode:
    async with session_factory() as session:
        result = await session.execute(
            select(AuthorizationCode).where(AuthorizationCode.code == code)
        )
        return result.scalar_one()


@pytest.fixture()
async def approved_code(client, make_user, make_item):
    """Approve a two-unit request against a five-unit item.

    Returns
    -------
    dict[str, object]
        Student and staff headers and ids, item id, request id and code.
    """
    student, student_id = await make_user()
    staff, staff_id = await make_user("staff")
    item_id = await make_item(quantity=5)
    request = await submit_request(client, student, item_id, quantity=2)
    result = await approve(client, staff, request["id"])
    return {
        "student": student,
        "student_id": student_id,
        "staff": staff,
        "staff_id": staff_id,
        "item_id": item_id,
        "request_id": request["id"],
        "code": result["authorization_code"],
    }


async def _redeem(client, headers, code: str, notes: str = ""):
    return await client.post(
        "/v1/authorization",
        headers=headers,
        json={"action": "use_code", "code": code, "notes": notes},
    )


class TestRedemption:
    """Exchanging codes for checkouts."""

    @pytest.mark.asyncio
    async def test_redeem_creates_checkout_and_completes_request(
        self, client, admin_headers, session_factory, approved_code
    ) -> None:
        """Redeem a valid code end to end.

        Parameters
        ----------
        client : AsyncClient
            Test HTTP client.
        admin_headers : dict[str, str]
            Administrator auth headers.
        session_factory : async_sessionmaker
            Direct database access.
        approved_code : dict[str, object]
            Approved request fixture.

        Returns
        -------
        None
            Asserts checkout, stock, code and request state.
        """
        response = await _redeem(
            client, approved_code["student"], approved_code["code"], "Bench 4"
        )

        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert data["new_quantity"] == 3
        checkout = data["checkout"]
        assert checkout["status"] == "checked_out"
        assert checkout["quantity"] == 2
        assert checkout["user_id"] == approved_code["student_id"]
        assert checkout["authorization_code"] == approved_code["code"]
        assert await item_quantity(client, admin_headers, approved_code["item_id"]) == 3

        code_row = await _code_row(session_factory, approved_code["code"])
        assert code_row.status == "used"
        assert code_row.used_at is not None
        assert str(code_row.checkout_id) == checkout["id"]

        async with session_factory() as session:
            request = await session.get(
                EquipmentRequest, code_row.request_id
            )
            linked = await session.get(Checkout, code_row.checkout_id)
        assert request.status == "completed"
        assert linked.item_id == request.item_id
        assert linked.user_id == request.user_id

    @pytest.mark.asyncio
    async def test_code_lookup_ignores_case_and_whitespace(
        self, client, approved_code
    ) -> None:
        """Normalize typed codes before lookup."""
        response = await _redeem(
            client,
            approved_code["student"],
            f"  {approved_code['code'].lower()} ",
        )

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_used_code_cannot_be_redeemed_again(
        self, client, admin_headers, approved_code
    ) -> None:
        """Reject a second redemption without changing stock."""
        await _redeem(client, approved_code["student"], approved_code["code"])

        again = await _redeem(client, approved_code["student"], approved_code["code"])

        assert again.status_code == 409
        assert again.json()["error"] == "code_already_used"
        assert await item_quantity(client, admin_headers, approved_code["item_id"]) == 3

    @pytest.mark.asyncio
    async def test_expired_code_flips_status_and_creates_nothing(
        self, client, admin_headers, session_factory, approved_code
    ) -> None:
        """Persist the expiry even though the redemption fails."""
        await _expire(session_factory, approved_code["code"])

        response = await _redeem(
            client, approved_code["student"], approved_code["code"]
        )

        assert response.status_code == 409
        assert response.json()["error"] == "code_expired"
        code_row = await _code_row(session_factory, approved_code["code"])
        assert code_row.status == "expired"
        assert code_row.checkout_id is None
        async with session_factory() as session:
            checkouts = await session.execute(select(Checkout))
            assert checkouts.scalars().all() == []
        assert await item_quantity(client, admin_headers, approved_code["item_id"]) == 5

    @pytest.mark.asyncio
    async def test_unknown_code_is_invalid(self, client, approved_code) -> None:
        """Return 404 with a code-specific error."""
        response = await _redeem(client, approved_code["student"], "ZZZZZZZZ")

        assert response.status_code == 404
        assert response.json()["error"] == "invalid_code"

    @pytest.mark.asyncio
    async def test_students_cannot_redeem_someone_elses_code(
        self, client, make_user, approved_code
    ) -> None:
        """Forbid redemption by another student."""
        intruder, _ = await make_user()

        response = await _redeem(client, intruder, approved_code["code"])

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    @pytest.mark.asyncio
    async def test_staff_redeem_on_behalf_of_student(
        self, client, approved_code
    ) -> None:
        """Open the checkout in the student's name."""
        response = await _redeem(client, approved_code["staff"], approved_code["code"])

        assert response.status_code == 200
        checkout = response.json()["data"]["checkout"]
        assert checkout["user_id"] == approved_code["student_id"]

    @pytest.mark.asyncio
    async def test_redeem_rechecks_inventory(
        self, client, admin_headers, session_factory, make_user, make_item
    ) -> None:
        """Refuse the second of two reservations that no longer fit."""
        student, _ = await make_user()
        staff, _ = await make_user("staff")
        item_id = await make_item(quantity=5)
        first = await submit_request(client, student, item_id, quantity=3)
        second = await submit_request(client, student, item_id, quantity=3)
        first_code = (await approve(client, staff, first["id"]))["authorization_code"]
        second_code = (await approve(client, staff, second["id"]))[
            "authorization_code"
        ]

        assert (await _redeem(client, student, first_code)).status_code == 200
        response = await _redeem(client, student, second_code)

        assert response.status_code == 409
        assert response.json()["error"] == "insufficient_inventory"
        assert await item_quantity(client, admin_headers, item_id) == 2
        code_row = await _code_row(session_factory, second_code)
        assert code_row.status == "active"


class TestValidation:
    """Read-only code previews."""

    @pytest.mark.asyncio
    async def test_validate_returns_preview(self, client, approved_code) -> None:
        """Describe the checkout a code unlocks."""
        response = await client.get(
            "/v1/authorization",
            headers=approved_code["student"],
            params={"action": "validate_code", "code": approved_code["code"]},
        )

        assert response.status_code == 200
        preview = response.json()["data"]
        assert preview["item_id"] == approved_code["item_id"]
        assert preview["quantity"] == 2
        assert preview["available_quantity"] == 5
        assert preview["user_name"].startswith("Sam ")

    @pytest.mark.asyncio
    async def test_validate_is_idempotent_until_expiry(
        self, client, session_factory, approved_code
    ) -> None:
        """Leave status alone on repeated reads, then flip once to expired."""
        params = {"action": "validate_code", "code": approved_code["code"]}
        for _ in range(3):
            response = await client.get(
                "/v1/authorization", headers=approved_code["student"], params=params
            )
            assert response.status_code == 200
        assert (await _code_row(session_factory, approved_code["code"])).status == (
            "active"
        )

        await _expire(session_factory, approved_code["code"])
        for _ in range(2):
            response = await client.get(
                "/v1/authorization", headers=approved_code["student"], params=params
            )
            assert response.json()["error"] == "code_expired"
        assert (await _code_row(session_factory, approved_code["code"])).status == (
            "expired"
        )

    @pytest.mark.asyncio
    async def test_validate_requires_code(self, client, approved_code) -> None:
        """Reject a validation without a code."""
        response = await client.get(
            "/v1/authorization",
            headers=approved_code["student"],
            params={"action": "validate_code"},
        )

        assert response.status_code == 400


class TestCancellation:
    """Staff cancelling codes."""

    @pytest.mark.asyncio
    async def test_cancelled_code_cannot_be_redeemed(
        self, client, session_factory, approved_code
    ) -> None:
        """Cancel a code and record the reason."""
        response = await client.put(
            "/v1/authorization",
            headers=approved_code["staff"],
            json={
                "action": "cancel_code",
                "code": approved_code["code"],
                "reason": "Item needs repair",
            },
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "cancelled"
        assert response.json()["data"]["cancel_reason"] == "Item needs repair"

        redeem = await _redeem(client, approved_code["student"], approved_code["code"])
        assert redeem.status_code == 409
        assert redeem.json()["error"] == "code_cancelled"

    @pytest.mark.asyncio
    async def test_students_cannot_cancel_codes(self, client, approved_code) -> None:
        """Reserve cancellation for staff."""
        response = await client.put(
            "/v1/authorization",
            headers=approved_code["student"],
            json={"action": "cancel_code", "code": approved_code["code"]},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_used_code_cannot_be_cancelled(self, client, approved_code) -> None:
        """Refuse to cancel a redeemed code."""
        await _redeem(client, approved_code["student"], approved_code["code"])

        response = await client.put(
            "/v1/authorization",
            headers=approved_code["staff"],
            json={"action": "cancel_code", "code": approved_code["code"]},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "code_already_used"


class TestCodeAdministration:
    """Listing and re-issuing codes."""

    @pytest.mark.asyncio
    async def test_generate_replacement_after_cancellation(
        self, client, approved_code
    ) -> None:
        """Re-issue a code once the previous one is cancelled."""
        payload = {
            "action": "generate_code",
            "request_id": approved_code["request_id"],
            "expiry_hours": 24,
        }
        blocked = await client.post(
            "/v1/authorization", headers=approved_code["staff"], json=payload
        )
        assert blocked.status_code == 409

        await client.put(
            "/v1/authorization",
            headers=approved_code["staff"],
            json={"action": "cancel_code", "code": approved_code["code"]},
        )
        reissued = await client.post(
            "/v1/authorization", headers=approved_code["staff"], json=payload
        )

        assert reissued.status_code == 200
        new_code = reissued.json()["data"]["authorization_code"]
        assert new_code != approved_code["code"]
        redeemed = await _redeem(client, approved_code["student"], new_code)
        assert redeemed.status_code == 200

    @pytest.mark.asyncio
    async def test_students_cannot_generate_codes(self, client, approved_code) -> None:
        """Reserve code generation for staff."""
        response = await client.post(
            "/v1/authorization",
            headers=approved_code["student"],
            json={
                "action": "generate_code",
                "request_id": approved_code["request_id"],
            },
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_listing_sweeps_overdue_codes(
        self, client, session_factory, approved_code
    ) -> None:
        """Expire overdue codes before listing them."""
        await _expire(session_factory, approved_code["code"])

        staff_view = await client.get(
            "/v1/authorization",
            headers=approved_code["staff"],
            params={"action": "list_codes"},
        )
        mine = await client.get(
            "/v1/authorization",
            headers=approved_code["student"],
            params={"action": "my_codes"},
        )

        assert [row["status"] for row in staff_view.json()["data"]] == ["expired"]
        assert [row["code"] for row in mine.json()["data"]] == [approved_code["code"]]
        assert (await _code_row(session_factory, approved_code["code"])).status == (
            "expired"
        )

    @pytest.mark.asyncio
    async def test_students_cannot_list_all_codes(self, client, approved_code) -> None:
        """Forbid the staff listing to students."""
        response = await client.get(
            "/v1/authorization",
            headers=approved_code["student"],
            params={"action": "list_codes"},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_action_is_rejected(self, client, approved_code) -> None:
        """Reject actions outside the tagged set."""
        response = await client.post(
            "/v1/authorization",
            headers=approved_code["staff"],
            json={"action": "teleport", "code": approved_code["code"]},
        )

        assert response.status_code == 422


class TestConcurrency:
    """Two sessions racing on the same code or request."""

    @pytest.mark.asyncio
    async def test_concurrent_reissue_mints_one_live_code(
        self, client, session_factory, approved_code, monkeypatch
    ) -> None:
        """Let only one of two simultaneous re-issues keep its code.

        Both sessions pass the existing-code check before either inserts,
        so only the live-code index can turn the second insert away.

        Parameters
        ----------
        client : AsyncClient
            Test HTTP client.
        session_factory : async_sessionmaker[AsyncSession]
            Factory for the racing sessions.
        approved_code : dict[str, object]
            Approved request with its first code.
        monkeypatch : pytest.MonkeyPatch
            Used to hold both sessions at the same point.

        Returns
        -------
        None
            Asserts one code issued, one conflict and one live code stored.
        """
        await client.put(
            "/v1/authorization",
            headers=approved_code["staff"],
            json={"action": "cancel_code", "code": approved_code["code"]},
        )
        barrier = asyncio.Barrier(2)
        draw_code = codes_service._unique_code

        async def _draw_after_both_checked(session, length):
            await barrier.wait()
            return await draw_code(session, length)

        monkeypatch.setattr(codes_service, "_unique_code", _draw_after_both_checked)
        caller = CallerContext(user_id=UUID(approved_code["staff_id"]), role=Role.STAFF)
        request_id = UUID(approved_code["request_id"])

        async def _reissue() -> str:
            async with session_factory() as session:
                auth_code = await generate_code_for_request(
                    session, caller, request_id=request_id, expiry_hours=24
                )
                await session.commit()
                return auth_code.code

        results = await asyncio.gather(_reissue(), _reissue(), return_exceptions=True)

        issued = [result for result in results if isinstance(result, str)]
        conflicts = [
            result for result in results if isinstance(result, StateConflictError)
        ]
        assert len(issued) == 1
        assert len(conflicts) == 1
        assert conflicts[0].message == (
            "Authorization code already exists for this request"
        )
        async with session_factory() as session:
            live = await session.execute(
                select(AuthorizationCode.code).where(
                    AuthorizationCode.request_id == request_id,
                    AuthorizationCode.status.in_(["active", "used"]),
                )
            )
            assert live.scalars().all() == issued

    @pytest.mark.asyncio
    async def test_concurrent_redemptions_check_out_once(
        self, client, admin_headers, session_factory, approved_code, monkeypatch
    ) -> None:
        """Open one checkout when the same code is redeemed twice at once."""
        barrier = asyncio.Barrier(2)
        withdraw = codes_service.withdraw_stock

        async def _withdraw_after_both_validated(session, **kwargs):
            await barrier.wait()
            return await withdraw(session, **kwargs)

        monkeypatch.setattr(
            codes_service, "withdraw_stock", _withdraw_after_both_validated
        )
        caller = CallerContext(
            user_id=UUID(approved_code["student_id"]), role=Role.STUDENT
        )

        async def _redeem_in_session():
            async with session_factory() as session:
                redemption = await redeem_code(
                    session, caller, code=approved_code["code"], notes=""
                )
                await session.commit()
                return redemption

        results = await asyncio.gather(
            _redeem_in_session(), _redeem_in_session(), return_exceptions=True
        )

        redeemed = [result for result in results if isinstance(result, Redemption)]
        refused = [
            result for result in results if isinstance(result, CodeAlreadyUsedError)
        ]
        assert len(redeemed) == 1
        assert len(refused) == 1
        assert redeemed[0].new_quantity == 3
        async with session_factory() as session:
            checkouts = await session.execute(select(Checkout))
            assert len(checkouts.scalars().all()) == 1
        assert await item_quantity(client, admin_headers, approved_code["item_id"]) == 3
        code_row = await _code_row(session_factory, approved_code["code"])
        assert code_row.status == "used"
        assert code_row.checkout_id == redeemed[0].checkout.id

    @pytest.mark.asyncio
    async def test_expiry_commit_outlives_the_failed_redemption(
        self, session_factory, approved_code
    ) -> None:
        """Keep the expired status after the redemption is rolled back."""
        await _expire(session_factory, approved_code["code"])
        caller = CallerContext(
            user_id=UUID(approved_code["student_id"]), role=Role.STUDENT
        )

        async with session_factory() as session:
            with pytest.raises(CodeExpiredError):
                await redeem_code(
                    session, caller, code=approved_code["code"], notes=""
                )
            await session.rollback()

        code_row = await _code_row(session_factory, approved_code["code"])
        assert code_row.status == "expired"
        async with session_factory() as session:
            request = await session.get(
                EquipmentRequest, UUID(approved_code["request_id"])
            )
            assert request.status == "approved"
            checkouts = await session.execute(select(Checkout))
            assert checkouts.scalars().all() == []
