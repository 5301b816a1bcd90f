import logging
from datetime import datetime

import pytest

from authstudio.adapters.capability import AdapterCapability, method_for, probe
from authstudio.adapters.facade import AdapterFacade, bind
from authstudio.adapters.mock import MockAdapter, example_users, generate_id
from tests.helpers import RecordingAdapter


class TestCapabilities:
    """Tests for capability probing."""

    def test_probe_object(self):
        assert probe(RecordingAdapter()) == (
            AdapterCapability.CREATE
            | AdapterCapability.UPDATE
            | AdapterCapability.DELETE
            | AdapterCapability.FIND_MANY
        )

    def test_probe_camel_case_and_mappings(self):
        raw = {"findMany": lambda options: [], "getSessions": lambda: [], "create": "not callable"}

        assert probe(raw) == AdapterCapability.FIND_MANY | AdapterCapability.GET_SESSIONS
        assert method_for(raw, AdapterCapability.FIND_MANY) is raw["findMany"]

    def test_probe_nothing(self):
        assert probe(None) == AdapterCapability.NONE
        assert probe(object()) == AdapterCapability.NONE

    def test_catch_all_proxies_are_not_adapters(self):
        class Proxy:
            def __getattr__(self, name):
                return lambda *args: None

        assert probe(Proxy()) == AdapterCapability.NONE

    def test_method_names(self):
        assert AdapterCapability.GET_USERS.method_names == ("get_users", "getUsers")


class TestMockAdapter:
    def test_generated_ids_are_prefixed(self):
        mock = MockAdapter()

        assert mock.create_organization({"name": "Acme"})["id"].startswith("org_")
        assert mock.create_session({})["id"].startswith("session_")
        assert generate_id("x") != generate_id("x")

    def test_create_user(self):
        user = MockAdapter().create_user({"name": "Ada", "email": "Ada@Example.COM", "password": "secret"})

        assert user["email"] == "ada@example.com"
        assert user["name"] == "Ada"
        assert "password" not in user
        assert isinstance(user["createdAt"], datetime)
        assert user["image"].startswith("https://api.dicebear.com/")

    def test_update_echoes_target(self):
        updated = MockAdapter().update("user", [{"field": "id", "value": "user_9"}], {"name": "New"})

        assert updated["id"] == "user_9"
        assert updated["name"] == "New"

    def test_example_data(self):
        mock = MockAdapter()

        assert [user["id"] for user in mock.get_users()] == ["user_1", "user_2"]
        assert [user["provider"] for user in example_users()] == ["email", "github"]
        assert mock.get_sessions()[0]["userId"] == "user_1"
        assert mock.delete("user", []) is None
        assert mock.find_many("session") == []


class TestAdapterFacade:
    """Tests for routing between the raw adapter and the mock."""

    async def test_unbound_facade_never_throws(self):
        facade = bind(None)

        assert facade.is_mock
        user = await facade.create_user({"name": "Ada", "email": "ada@example.com", "password": "pw"})
        assert user["email"] == "ada@example.com"
        assert len(await facade.get_users()) == 2
        assert len(await facade.get_sessions()) == 1
        assert (await facade.update("user", [{"field": "id", "value": "u"}], {"name": "B"}))["id"] == "u"
        assert await facade.delete("user", [{"field": "id", "value": "u"}]) is None

    async def test_create_user_with_password_creates_credential_account(self):
        raw = RecordingAdapter()
        facade = bind(raw)

        user = await facade.create_user({"name": "Ada", "email": "ADA@example.com", "password": "pw"})

        assert user["id"] == "user_real"
        assert user["email"] == "ada@example.com"
        assert "password" not in user
        models = [options["model"] for operation, options in raw.calls if operation == "create"]
        assert models == ["user", "account"]
        account = raw.calls[1][1]["data"]
        assert account["providerId"] == "credential"
        assert account["userId"] == "user_real"

    async def test_credential_account_failure_keeps_user(self, caplog):
        facade = bind(RecordingAdapter(failing_models={"account"}))

        user = await facade.create_user({"name": "Ada", "email": "ada@example.com", "password": "pw"})

        assert user["id"] == "user_real"
        assert "credential account" in caplog.text

    async def test_degradation_is_per_model(self, caplog):
        """A failing model degrades alone while other models use real data."""
        facade = bind(RecordingAdapter(failing_models={"session"}))

        with caplog.at_level(logging.WARNING, logger="authstudio.adapters.facade"):
            users = await facade.get_users()
            sessions = await facade.get_sessions()

        assert users == [{"id": "real_1", "email": "real@example.com"}]
        assert sessions == []
        assert facade.degradations == {"find_many": 1}
        assert "find_many(session) degraded to mock" in caplog.text

    async def test_failing_write_returns_mock_record(self):
        facade = bind(RecordingAdapter(failing_models={"organization"}))

        organization = await facade.create_organization({"name": "Acme"})

        assert organization["id"].startswith("org_")
        assert organization["name"] == "Acme"
        assert facade.status()["degradations"] == {"create": 1}

    async def test_sync_raw_methods(self):
        class SyncAdapter:
            def get_users(self):
                return [{"id": "sync_user"}]

            def get_sessions(self):
                raise ConnectionError("down")

        facade = AdapterFacade(SyncAdapter())

        assert await facade.get_users() == [{"id": "sync_user"}]
        assert await facade.get_sessions() == []
        assert facade.status()["capabilities"] == ["get_users", "get_sessions"]

    async def test_missing_capabilities_route_to_mock(self):
        class ReadOnly:
            async def find_many(self, options):
                return [{"id": "only"}]

        facade = bind(ReadOnly())

        assert not facade.is_mock
        assert not facade.supports(AdapterCapability.CREATE)
        assert (await facade.create("verification", {"identifier": "x"}))["id"].startswith("verification_")
        assert await facade.find_many("user", limit=5) == [{"id": "only"}]

    async def test_find_many_passes_options(self):
        raw = RecordingAdapter()
        facade = bind(raw)

        await facade.find_many("user", where=[{"field": "email", "value": "a"}], limit=10)

        assert raw.calls == [
            ("find_many", {"model": "user", "where": [{"field": "email", "value": "a"}], "limit": 10})
        ]

    @pytest.mark.parametrize("raw", [None, {}])
    async def test_status_of_unusable_adapters(self, raw):
        facade = bind(raw)

        assert facade.status()["capabilities"] == []
