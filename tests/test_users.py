"""Bootstrap, account and issue reporting tests."""

import pytest

from app.config import get_settings


class TestBootstrap:
    """First administrator creation."""

    @pytest.mark.asyncio
    async def test_bootstrap_runs_once(self, client, admin_headers) -> None:
        """Refuse a second bootstrap.

        Parameters
        ----------
        client : AsyncClient
            Test HTTP client.
        admin_headers : dict[str, str]
            Headers from the first bootstrap.

        Returns
        -------
        None
            Asserts the conflict response.
        """
        response = await client.post(
            "/v1/bootstrap",
            json={
                "first_name": "Eve",
                "last_name": "Second",
                "email": "eve@university.edu",
            },
        )

        assert response.status_code == 409
        me = await client.get("/v1/users/me", headers=admin_headers)
        assert me.json()["data"]["role"] == "admin"

    @pytest.mark.asyncio
    async def test_bootstrap_can_be_disabled(
        self, client, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Honour the bootstrap switch."""
        monkeypatch.setenv("LAB_INVENTORY_BOOTSTRAP_ENABLED", "false")
        get_settings.cache_clear()

        response = await client.post(
            "/v1/bootstrap",
            json={
                "first_name": "Ada",
                "last_name": "Admin",
                "email": "admin@university.edu",
            },
        )

        assert response.status_code == 403
        assert response.json()["message"] == "Bootstrap disabled"


class TestAccounts:
    """Account management and authentication."""

    @pytest.mark.asyncio
    async def test_missing_and_bad_tokens_are_rejected(self, client) -> None:
        """Return 401 without a valid bearer token."""
        missing = await client.get("/v1/users/me")
        bad = await client.get(
            "/v1/users/me", headers={"Authorization": "Bearer stu_nope"}
        )

        assert missing.status_code == 401
        assert missing.json()["error"] == "not_authenticated"
        assert bad.status_code == 401

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, client, admin_headers) -> None:
        """Keep emails unique regardless of case."""
        payload = {
            "first_name": "Kim",
            "last_name": "Lee",
            "email": "kim@university.edu",
        }
        first = await client.post("/v1/users", headers=admin_headers, json=payload)
        payload["email"] = "KIM@university.edu"
        second = await client.post("/v1/users", headers=admin_headers, json=payload)

        assert first.status_code == 200
        assert second.status_code == 409

    @pytest.mark.asyncio
    async def test_staff_can_only_create_students(self, client, make_user) -> None:
        """Forbid staff from minting staff accounts."""
        staff, _ = await make_user("staff")

        response = await client.post(
            "/v1/users",
            headers=staff,
            json={
                "first_name": "Pat",
                "last_name": "Tutor",
                "email": "pat@university.edu",
                "role": "staff",
            },
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_list_users_filters_by_role(
        self, client, admin_headers, make_user
    ) -> None:
        """Filter the directory by role."""
        await make_user()
        await make_user("staff")

        response = await client.get(
            "/v1/users", headers=admin_headers, params={"role": "staff"}
        )

        assert [row["role"] for row in response.json()["data"]] == ["staff"]

    @pytest.mark.asyncio
    async def test_deactivated_user_loses_access(
        self, client, admin_headers, make_user
    ) -> None:
        """Revoke tokens on deactivation."""
        student, student_id = await make_user()

        response = await client.delete(
            f"/v1/users/{student_id}", headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "inactive"
        me = await client.get("/v1/users/me", headers=student)
        assert me.status_code == 401

    @pytest.mark.asyncio
    async def test_admin_cannot_deactivate_self(self, client, admin_headers) -> None:
        """Refuse self-deactivation."""
        me = await client.get("/v1/users/me", headers=admin_headers)
        admin_id = me.json()["data"]["id"]

        response = await client.delete(f"/v1/users/{admin_id}", headers=admin_headers)

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_additional_token_works(
        self, client, admin_headers, make_user
    ) -> None:
        """Issue a second token for a user."""
        _, student_id = await make_user()

        response = await client.post(
            f"/v1/users/{student_id}/tokens",
            headers=admin_headers,
            json={"name": "laptop"},
        )

        assert response.status_code == 200
        token = response.json()["data"]["token"]
        me = await client.get(
            "/v1/users/me", headers={"Authorization": f"Bearer {token}"}
        )
        assert me.json()["data"]["id"] == student_id


class TestIssues:
    """Issue reporting."""

    @pytest.mark.asyncio
    async def test_report_and_resolve(self, client, make_user, make_item) -> None:
        """Report an issue and resolve it once."""
        student, _ = await make_user()
        staff, _ = await make_user("staff")
        item_id = await make_item()

        reported = await client.post(
            "/v1/issues",
            headers=student,
            json={
                "item_id": item_id,
                "type": "damage",
                "severity": "high",
                "description": "Cracked screen",
            },
        )
        assert reported.status_code == 200
        issue = reported.json()["data"]
        assert issue["status"] == "open"
        assert issue["item_name"] == "Oscilloscope"

        resolved = await client.put(
            f"/v1/issues/{issue['id']}/resolve", headers=staff
        )
        assert resolved.status_code == 200
        assert resolved.json()["data"]["status"] == "resolved"
        assert resolved.json()["data"]["resolved_at"] is not None

        again = await client.put(f"/v1/issues/{issue['id']}/resolve", headers=staff)
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_issue_visibility(self, client, make_user, make_item) -> None:
        """Show reporters their own issues and staff all of them."""
        reporter, _ = await make_user()
        bystander, _ = await make_user()
        staff, _ = await make_user("staff")
        item_id = await make_item()
        await client.post(
            "/v1/issues",
            headers=reporter,
            json={"item_id": item_id, "type": "missing", "description": "Lid gone"},
        )

        own = await client.get("/v1/issues", headers=reporter)
        other = await client.get("/v1/issues", headers=bystander)
        everyone = await client.get("/v1/issues", headers=staff)

        assert len(own.json()["data"]) == 1
        assert other.json()["data"] == []
        assert len(everyone.json()["data"]) == 1

    @pytest.mark.asyncio
    async def test_issue_requires_existing_item(self, client, make_user) -> None:
        """Return 404 for an unknown item."""
        student, _ = await make_user()

        response = await client.post(
            "/v1/issues",
            headers=student,
            json={
                "item_id": "00000000-0000-0000-0000-000000000000",
                "type": "other",
                "description": "Cannot find it",
            },
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_students_cannot_resolve(self, client, make_user, make_item) -> None:
        """Reserve resolution for staff."""
        student, _ = await make_user()
        item_id = await make_item()
        reported = await client.post(
            "/v1/issues",
            headers=student,
            json={"item_id": item_id, "type": "other", "description": "Wobbly"},
        )

        response = await client.put(
            f"/v1/issues/{reported.json()['data']['id']}/resolve", headers=student
        )

        assert response.status_code == 403
