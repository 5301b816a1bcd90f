"""
End-to-end tests of the JSON endpoints through an ASGI transport.
"""

from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient

from authstudio.app import create_app
from authstudio.context import StudioContext
from tests.helpers import PARTIAL_ADAPTER_CONFIG, write


class TestWithoutConfiguration:
    """The dashboard renders example data when no configuration exists."""

    async def test_health(self, client):
        response = await client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["configPath"] is None

    async def test_users_are_examples(self, client):
        response = await client.get("/api/users")
        body = response.json()

        assert response.status_code == 200
        assert [user["id"] for user in body["users"]] == ["user_1", "user_2"]
        assert body["total"] == 2
        datetime.fromisoformat(body["users"][0]["createdAt"])

    async def test_users_search_and_paging(self, client):
        body = (await client.get("/api/users", params={"search": "user2"})).json()
        assert [user["id"] for user in body["users"]] == ["user_2"]

        body = (await client.get("/api/users", params={"page": 2, "limit": 1})).json()
        assert [user["id"] for user in body["users"]] == ["user_2"]
        assert body["page"] == 2

    async def test_invalid_paging(self, client):
        response = await client.get("/api/users", params={"page": "first"})

        assert response.status_code == 400
        assert "page" in response.json()["error"]

    async def test_default_config(self, client):
        body = (await client.get("/api/config")).json()

        assert body["success"] is True
        assert body["loadedBy"] == "not-found"
        assert body["config"]["appName"] == "Better Auth"
        assert body["config"]["database"]["type"] == "unknown"

    async def test_stats(self, client):
        body = (await client.get("/api/stats")).json()

        assert body["totalUsers"] == 2
        assert body["totalSessions"] == 1
        assert body["activeSessions"] == 1
        assert body["usingMockData"] is True

    async def test_sessions_providers_plugins(self, client):
        assert len((await client.get("/api/sessions")).json()["sessions"]) == 1
        assert (await client.get("/api/providers")).json() == {"success": True, "providers": []}
        assert (await client.get("/api/plugins")).json()["totalPlugins"] == 0

        status = (await client.get("/api/plugins/organization/status")).json()
        assert status["enabled"] is False
        assert status["organizationPlugin"] is None

    async def test_user_crud(self, client):
        created = await client.post("/api/users", json={"name": "Ada", "email": "ADA@example.com", "password": "pw"})
        assert created.status_code == 200
        user = created.json()["user"]
        assert user["email"] == "ada@example.com"
        assert "password" not in user

        updated = (await client.put(f"/api/users/{user['id']}", json={"name": "Ada L."})).json()
        assert updated["user"]["id"] == user["id"]
        assert updated["user"]["name"] == "Ada L."

        assert (await client.delete(f"/api/users/{user['id']}")).json() == {"success": True}

    @pytest.mark.parametrize("body", [{"email": "a@example.com"}, {"name": "No Email"}])
    async def test_create_user_requires_name_and_email(self, client, body):
        response = await client.post("/api/users", json=body)

        assert response.status_code == 400
        assert "error" in response.json()

    async def test_invalid_json_body(self, client):
        response = await client.post("/api/users", content=b"{not json", headers={"content-type": "application/json"})

        assert response.status_code == 400

    async def test_organization_crud(self, client):
        created = (await client.post("/api/organizations", json={"name": "Acme Corp"})).json()
        organization = created["organization"]
        assert organization["slug"] == "acme-corp"
        assert organization["id"].startswith("org_")

        updated = (await client.put(f"/api/organizations/{organization['id']}", json={"name": "Acme"})).json()
        assert updated["organization"]["id"] == organization["id"]

        assert (await client.delete(f"/api/organizations/{organization['id']}")).json()["success"] is True
        assert (await client.get("/api/organizations")).json()["organizations"] == []

    async def test_schema_defaults_to_base_tables(self, client):
        body = (await client.get("/api/database/schema")).json()

        assert body["success"] is True
        assert [t["name"] for t in body["schema"]["tables"]] == ["user", "session", "account", "verification"]

    async def test_schema_for_requested_plugins(self, client):
        body = (await client.get("/api/database/schema", params={"plugins": "organization, teams"})).json()
        names = [t["name"] for t in body["schema"]["tables"]]

        assert {"organization", "member", "invitation", "team", "teamMember"} <= set(names)

    async def test_seed(self, client):
        body = (await client.post("/api/seed/users", json={"count": 3, "role": "admin"})).json()

        assert body["success"] is True
        assert body["count"] == 3
        assert all(user["role"] == "admin" for user in body["results"])

    async def test_seed_without_body(self, client):
        body = (await client.post("/api/seed/organizations")).json()

        assert body["count"] == 1

    @pytest.mark.parametrize("count", [0, 101, "3", True])
    async def test_seed_rejects_bad_counts(self, client, count):
        response = await client.post("/api/seed/sessions", json={"count": count})

        assert response.status_code == 400

    async def test_seed_unknown_kind(self, client):
        response = await client.post("/api/seed/widgets", json={})

        assert response.status_code == 404
        assert "widgets" in response.json()["error"]

    async def test_unknown_route(self, client):
        response = await client.get("/api/nothing-here")

        assert response.status_code == 404
        assert response.json() == {"error": "Not Found"}

    async def test_wrong_method(self, client):
        response = await client.delete("/api/users")

        assert response.status_code == 405
        assert "error" in response.json()


class TestWithConfiguration:
    async def test_partial_adapter_failure(self, client, project):
        """A failing session model degrades while users come from the real adapter."""
        write(project / "auth.py", PARTIAL_ADAPTER_CONFIG)

        response = await client.get("/api/stats")
        body = response.json()

        assert response.status_code == 200
        assert body["success"] is True
        assert body["totalUsers"] == 1
        assert body["totalSessions"] == 0
        assert body["usingMockData"] is False
        assert body["adapter"]["degradations"] == {"find_many": 1}

        users = (await client.get("/api/users")).json()["users"]
        assert users == [{"id": "real_user", "email": "real@example.com", "name": "Real User"}]

    async def test_config_from_source(self, client, context, project):
        context.loader.node.binary = "authstudio-missing-node"
        write(
            project / "auth.ts",
            """
            import { betterAuth } from "better-auth";
            import { organization } from "better-auth/plugins";

            export const auth = betterAuth({
              appName: "Dashboard Test",
              socialProviders: { github: { clientId: "gh" } },
              plugins: [organization({ teams: { enabled: true } })],
            });
            """,
        )

        config = (await client.get("/api/config")).json()
        assert config["config"]["appName"] == "Dashboard Test"
        assert config["configPath"].endswith("auth.ts")

        providers = (await client.get("/api/providers")).json()["providers"]
        assert providers == [{"type": "github", "clientId": "gh"}]

        status = (await client.get("/api/plugins/organization/status")).json()
        assert status["enabled"] is True
        assert status["teamsEnabled"] is True

        tables = (await client.get("/api/database/schema")).json()["schema"]["tables"]
        assert "team" in [t["name"] for t in tables]

    async def test_each_app_owns_its_context(self, project, settings, tmp_path):
        other = tmp_path / "other"
        write(other / "auth.py", PARTIAL_ADAPTER_CONFIG)
        apps = [
            create_app(context=StudioContext(project, settings)),
            create_app(context=StudioContext(other, settings)),
        ]

        totals = []
        for app in apps:
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as c:
                totals.append((await c.get("/api/stats")).json()["totalUsers"])

        assert totals == [2, 1]
