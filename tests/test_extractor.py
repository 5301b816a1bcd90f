import sqlite3
import textwrap
import types
from dataclasses import dataclass, field

import pytest

from authstudio.config.extractor import (
    ConfigExtractor,
    describe_database,
    detect_database,
    enabled_plugin_ids,
    find_export,
)
from authstudio.config.literal import Call, EnvReference, New
from authstudio.config.schema import AuthConfig
from authstudio.config.types import DegradedModule
from authstudio.exceptions import ConfigExtractionError

TS_CONFIG = textwrap.dedent(
    """
    import { betterAuth } from "better-auth";
    import { prismaAdapter } from "better-auth/adapters/prisma";
    import { organization, twoFactor } from "better-auth/plugins";
    import { prisma } from "./db";

    const plugins = [organization({ teams: { enabled: true } }), twoFactor()];

    export const auth = betterAuth({
      appName: "Acme",
      baseURL: process.env.BETTER_AUTH_URL,
      secret: process.env.BETTER_AUTH_SECRET,
      database: prismaAdapter(prisma, { provider: "sqlite" }),
      emailAndPassword: {
        enabled: true,
        minPasswordLength: 10,
        async sendResetPassword({ user, url }) {
          await sendEmail(user.email, url);
        },
      },
      socialProviders: {
        github: {
          clientId: process.env.GITHUB_CLIENT_ID!,
          clientSecret: process.env.GITHUB_CLIENT_SECRET!,
        },
        google: { clientId: "google-id", clientSecret: "google-secret" },
      },
      session: { expiresIn: 60 * 60 * 24 * 7 },
      trustedOrigins: ["http://localhost:3000"],
      plugins,
    });
    """
)

PY_CONFIG = textwrap.dedent(
    """
    import os
    import sqlite3

    from better_auth import better_auth
    from better_auth.plugins import organization, two_factor

    auth = better_auth(
        app_name="Py App",
        secret=os.environ["AUTH_SECRET"],
        database=sqlite3.connect("app.db"),
        email_and_password={"enabled": True},
        social_providers={"github": {"client_id": os.getenv("GITHUB_ID")}},
        plugins=[organization(), two_factor()],
    )
    """
)


@pytest.fixture
def extractor():
    return ConfigExtractor()


class TestSourceExtraction:
    """Reading configuration straight out of source text."""

    def test_typescript_source(self, extractor):
        config = extractor.extract(TS_CONFIG)

        assert config.app_name == "Acme"
        assert config.base_url == "${BETTER_AUTH_URL}"
        assert config.secret is True
        assert config.database.adapter == "prisma"
        assert config.database.provider == "sqlite"
        assert config.database.type == "sqlite"
        assert config.email_and_password.enabled is True
        assert config.email_and_password.min_password_length == 10
        assert config.session.expires_in == 604800
        assert config.trusted_origins == ["http://localhost:3000"]

    def test_plugins_identifier_is_resolved(self, extractor):
        config = extractor.extract(TS_CONFIG)

        assert [plugin.id for plugin in config.plugins] == ["organization", "twoFactor"]
        assert config.plugins[0].options == {"teams": {"enabled": True}}
        assert enabled_plugin_ids(config) == ["organization", "teams", "twoFactor"]

    def test_social_providers(self, extractor):
        config = extractor.extract(TS_CONFIG)

        assert list(config.social_providers) == ["github", "google"]
        assert config.social_providers["github"]["clientId"] == "${GITHUB_CLIENT_ID}"
        assert config.providers == [
            {
                "type": "github",
                "clientId": "${GITHUB_CLIENT_ID}",
                "clientSecret": "${GITHUB_CLIENT_SECRET}",
            },
            {"type": "google", "clientId": "google-id", "clientSecret": "google-secret"},
        ]

    def test_python_source(self, extractor):
        config = extractor.extract(PY_CONFIG)

        assert config.app_name == "Py App"
        assert config.secret is True
        assert config.database.adapter == "sqlite"
        assert config.database.name == "app.db"
        assert config.email_and_password.enabled is True
        assert config.social_providers == {"github": {"client_id": "${GITHUB_ID}"}}
        assert [plugin.id for plugin in config.plugins] == ["organization", "twoFactor"]

    def test_default_export(self, extractor):
        source = 'export default betterAuth({ appName: "Default", basePath: "/auth" })'
        config = extractor.extract(source)

        assert config.app_name == "Default"
        assert config.base_path == "/auth"

    def test_degraded_module(self, extractor, tmp_path):
        module = DegradedModule(tmp_path / "auth.py", PY_CONFIG, ImportError("better_auth"))

        assert extractor.extract(module).app_name == "Py App"

    def test_unparseable_literal_falls_back_to_defaults(self, extractor):
        config = extractor.extract("export const auth = betterAuth({ ...base, appName: 'x' })")

        assert config == AuthConfig()

    def test_extract_source_raises_without_factory(self, extractor):
        with pytest.raises(ConfigExtractionError):
            extractor.extract_source("export const config = { appName: 'x' }")

    def test_unresolvable_plugins_identifier(self, extractor):
        with pytest.raises(ConfigExtractionError):
            extractor.extract_source("export const auth = betterAuth({ plugins })")


class TestNormalization:
    """Mapping live objects and mappings onto AuthConfig."""

    def test_extraction_is_idempotent(self, extractor):
        """Extracting an already normalized configuration changes nothing."""
        config = extractor.extract(TS_CONFIG)

        assert extractor.extract(config).dump() == config.dump()
        assert extractor.extract(config.dump()).dump() == config.dump()

    def test_social_provider_round_trip(self, extractor):
        """Every socialProviders entry appears in providers and nothing else does."""
        social = {"github": {"clientId": "a"}, "discord": {"clientId": "b", "clientSecret": "c"}}
        config = extractor.normalize({"socialProviders": social})

        assert config.social_providers == social
        assert {provider["type"] for provider in config.providers} == set(social)
        for provider in config.providers:
            settings = {key: value for key, value in provider.items() if key != "type"}
            assert settings == social[provider["type"]]

    def test_provider_list_form(self, extractor):
        config = extractor.normalize({"providers": [{"id": "github", "client_id": "x"}, {"name": "no-id"}]})

        assert config.social_providers == {"github": {"clientId": "x"}}
        assert config.providers == [{"type": "github", "clientId": "x"}]

    def test_wrong_types_fall_back_to_defaults(self, extractor):
        config = extractor.normalize(
            {"appName": "Typed", "session": {"expiresIn": "soon", "updateAge": 10}, "plugins": "all"}
        )

        assert config.app_name == "Typed"
        assert config.session.expires_in == 604800
        assert config.session.update_age == 10
        assert config.plugins == []

    def test_live_auth_object(self, extractor):
        @dataclass
        class Plugin:
            id: str
            options: dict = field(default_factory=dict)

        class Auth:
            def __init__(self):
                self.options = {
                    "app_name": "Live",
                    "email_and_password": {"enabled": True},
                    "plugins": [Plugin("organization", {"teams": {"enabled": False}}), Plugin("admin")],
                    "hooks": {"before": lambda ctx: ctx},
                }

        module = types.ModuleType("host_auth")
        module.auth = Auth()
        config = extractor.extract(module)

        assert config.app_name == "Live"
        assert config.email_and_password.enabled is True
        assert [plugin.id for plugin in config.plugins] == ["organization", "admin"]
        assert enabled_plugin_ids(config) == ["organization", "admin"]

    def test_module_without_export(self, extractor):
        assert extractor.extract(types.ModuleType("empty")) == AuthConfig()

    def test_find_export_prefers_auth(self):
        assert find_export({"auth": {"a": 1}, "default": {"b": 2}}) == {"a": 1}
        assert find_export({"default": {"b": 2}}) == {"b": 2}
        assert find_export({"auth": "not an instance"}) is None
        assert find_export(object()) is None


class TestDatabaseDescription:
    """Describing the persistence layer from whatever the options hold."""

    def test_adapter_calls(self):
        assert describe_database(Call("drizzleAdapter", (None, {"provider": "pg"}))) == {
            "adapter": "drizzle",
            "provider": "pg",
            "type": "postgresql",
        }
        assert describe_database(Call("prismaAdapter", (None,)))["type"] == "postgresql"
        assert describe_database(Call("mongodbAdapter", (None,))) == {"adapter": "mongodb", "type": "mongodb"}

    def test_constructors(self):
        assert describe_database(New("Database", ("./data.db",))) == {
            "adapter": "sqlite",
            "type": "sqlite",
            "provider": "sqlite",
            "name": "./data.db",
        }
        pool = describe_database(New("Pool", ({"connectionString": EnvReference("DATABASE_URL")},)))
        assert pool["type"] == "postgresql"
        assert pool["url"] == "${DATABASE_URL}"

    def test_urls(self):
        assert describe_database("postgres://localhost/app")["type"] == "postgresql"
        assert describe_database("./local.db")["type"] == "sqlite"
        assert describe_database(EnvReference("DB"))["url"] == "${DB}"

    def test_live_sqlite_connection(self):
        connection = sqlite3.connect(":memory:")
        try:
            assert describe_database(connection)["adapter"] == "sqlite"
        finally:
            connection.close()

    def test_mapping_is_stable(self):
        described = describe_database({"provider": "mysql", "url": "mysql://db"})

        assert described["type"] == "mysql"
        assert describe_database(described) == described

    def test_source_heuristics(self):
        source = 'import Database from "better-sqlite3";\nconst db = new Database("auth.sqlite");\nconst url = process.env.DATABASE_URL;'

        assert detect_database(source) == {
            "adapter": "sqlite",
            "type": "sqlite",
            "provider": "sqlite",
            "name": "auth.sqlite",
            "url": "${DATABASE_URL}",
        }
        assert describe_database(None, source)["adapter"] == "sqlite"
