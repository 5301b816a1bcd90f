import pytest

from authstudio.config.extractor import ConfigExtractor
from authstudio.config.literal import (
    Call,
    EnvReference,
    FunctionValue,
    LiteralParser,
    New,
    Reference,
    parse_literal,
    to_plain,
)
from authstudio.exceptions import ConfigExtractionError


class TestScriptLiterals:
    """Object literals written in TypeScript/JavaScript."""

    def test_plain_data(self):
        source = """{
            appName: 'Acme',
            "basePath": "/api/auth",
            enabled: true,
            missing: undefined,
            nothing: null,
            list: [1, 2, 3,],
            nested: { deep: { value: 0x10 } },
        }"""

        assert parse_literal(source) == {
            "appName": "Acme",
            "basePath": "/api/auth",
            "enabled": True,
            "missing": None,
            "nothing": None,
            "list": [1, 2, 3],
            "nested": {"deep": {"value": 16}},
        }

    def test_comments_are_ignored(self):
        source = """{
            // line comment
            a: 1, /* block
            comment */ b: 2,
        }"""

        assert parse_literal(source) == {"a": 1, "b": 2}

    def test_arithmetic_and_concatenation(self):
        source = '{ expiresIn: 60 * 60 * 24 * 7, updateAge: 1_000 - 1, ratio: 3 / 2, url: "http://" + "localhost" }'

        assert parse_literal(source) == {
            "expiresIn": 604800,
            "updateAge": 999,
            "ratio": 1.5,
            "url": "http://localhost",
        }

    def test_environment_lookups(self):
        source = """{
            id: process.env.GITHUB_CLIENT_ID!,
            secret: process.env["GITHUB_SECRET"],
            url: process.env.BASE_URL || "http://localhost:3000",
            vite: import.meta.env.VITE_KEY ?? "dev",
        }"""

        value = parse_literal(source)
        assert value["id"] == EnvReference("GITHUB_CLIENT_ID")
        assert value["secret"] == EnvReference("GITHUB_SECRET")
        assert value["url"] == EnvReference("BASE_URL", "http://localhost:3000")
        assert value["vite"] == EnvReference("VITE_KEY", "dev")
        assert str(value["url"]) == "${BASE_URL:-http://localhost:3000}"

    def test_calls_and_constructors(self):
        source = '{ database: prismaAdapter(prisma, { provider: "sqlite" }), db: new Database("./app.db") }'

        value = parse_literal(source)
        assert value["database"] == Call("prismaAdapter", (Reference("prisma"), {"provider": "sqlite"}))
        assert value["db"] == New("Database", ("./app.db",))
        assert to_plain(value) == {"database": "prismaAdapter()", "db": "new Database()"}

    def test_functions_become_function_values(self):
        source = """{
            sendResetPassword: async ({ user, url }) => {
                await sendEmail({ to: user.email, text: `Reset: ${url}` });
            },
            generateId() { return crypto.randomUUID(); },
            onError: (error: Error): void => console.error(error),
            legacy: function (a, b) { return a + b; },
            after: 1,
        }"""

        value = parse_literal(source)
        assert value["sendResetPassword"] == FunctionValue()
        assert value["generateId"] == FunctionValue()
        assert value["onError"] == FunctionValue()
        assert value["legacy"] == FunctionValue()
        assert value["after"] == 1
        assert str(value["legacy"]) == "[Function]"

    def test_shorthand_properties_are_references(self):
        assert parse_literal("{ plugins, database }") == {
            "plugins": Reference("plugins"),
            "database": Reference("database"),
        }

    def test_type_annotations_are_skipped(self):
        source = '{ roles: ["admin", "user"] as const, level: 3 satisfies number, map: {} as Record<string, string> }'

        assert parse_literal(source) == {"roles": ["admin", "user"], "level": 3, "map": {}}

    def test_template_literals(self):
        assert parse_literal("{ plain: `hello`, interpolated: `${base}/callback` }") == {
            "plain": "hello",
            "interpolated": "${base}/callback",
        }

    def test_escape_sequences(self):
        source = r"""{
            accent: "caf\u00e9",
            code: "\x41\u{1F600}",
            pair: "\uD83D\uDE00",
            continued: 'line\
 continued',
            quoted: "say \"hi\" \/ \'ok\'",
        }"""

        assert parse_literal(source) == {
            "accent": "café",
            "code": "A\U0001F600",
            "pair": "\U0001F600",
            "continued": "line continued",
            "quoted": "say \"hi\" / 'ok'",
        }

    @pytest.mark.parametrize(
        "source",
        [r'"\q"', r'"\u00g1"', r'"\x4"', r'"\u{110000}"', r'"\uD83D"', r'"\012"'],
    )
    def test_unknown_escapes_raise(self, source):
        with pytest.raises(ConfigExtractionError):
            parse_literal(source)

    def test_parse_starts_at_offset(self):
        source = "const options = { a: 1 }; const other = 2;"
        parser = LiteralParser(source, source.index("{"))

        assert parser.parse() == {"a": 1}
        assert source[parser.end:].startswith(";")

    @pytest.mark.parametrize(
        "source",
        [
            "{ ...defaults, a: 1 }",
            "{ [key]: 1 }",
            "{ a: isProd ? 1 : 2 }",
            "{ a: typeof window }",
            "{ a: /abc/ }",
            "{ a: 1 ",
            "{ a: 'unterminated }",
            "{ a: [...items] }",
        ],
    )
    def test_unsupported_expressions_raise(self, source):
        with pytest.raises(ConfigExtractionError):
            parse_literal(source)

    def test_error_carries_offset(self):
        with pytest.raises(ConfigExtractionError) as exc_info:
            parse_literal("{ a: 1, ...rest }")

        assert exc_info.value.position == 8
        assert "offset 8" in str(exc_info.value)


class TestPythonLiterals:
    """Dict literals and call arguments written in Python."""

    def test_dict_literal(self):
        source = """{
            "enabled": True,  # comment
            "name": None,
            "doc": '''multi
line''',
            "url": os.getenv("DATABASE_URL", "sqlite:///app.db"),
            "secret": os.environ["SECRET"],
        }"""

        assert parse_literal(source, python=True) == {
            "enabled": True,
            "name": None,
            "doc": "multi\nline",
            "url": EnvReference("DATABASE_URL", "sqlite:///app.db"),
            "secret": EnvReference("SECRET"),
        }

    def test_keyword_arguments(self):
        source = '(app_name="Py", secret=os.environ.get("SECRET"), plugins=[organization()])'
        args = LiteralParser(source, 0, python=True).parse_arguments()

        assert args == (
            {"app_name": "Py"},
            {"secret": EnvReference("SECRET")},
            {"plugins": [Call("organization")]},
        )

    def test_lambda_is_a_function_value(self):
        assert parse_literal('{"hook": lambda user: user.id, "after": 2}', python=True) == {
            "hook": FunctionValue(),
            "after": 2,
        }

    def test_or_default_on_environment(self):
        assert parse_literal('os.environ.get("PORT") or 3000', python=True) == EnvReference("PORT", 3000)

    def test_or_on_plain_values_raises(self):
        with pytest.raises(ConfigExtractionError):
            parse_literal('{"a": value or 3}', python=True)

    def test_floor_division(self):
        source = '{"expires_in": 86400 // 2, "update_age": 7 // 2 * 2, "ratio": 3 / 2}'

        assert parse_literal(source, python=True) == {"expires_in": 43200, "update_age": 6, "ratio": 1.5}

    def test_floor_division_in_last_item(self):
        """Floor division is arithmetic in Python, not a trailing comment."""
        source = 'auth = better_auth(\n    session={\n        "expires_in": 86400 // 2\n    },\n)\n'

        assert ConfigExtractor().extract(source).session.expires_in == 43200

    def test_floor_division_by_zero_raises(self):
        with pytest.raises(ConfigExtractionError):
            parse_literal('{"a": 1 // 0}', python=True)

    def test_escape_sequences(self):
        source = r'"café \N{BULLET} \U0001F600 \x41"'

        assert parse_literal(source, python=True) == "café • \U0001F600 A"

    def test_unknown_character_name_raises(self):
        with pytest.raises(ConfigExtractionError):
            parse_literal(r'"\N{NOT A REAL CHARACTER}"', python=True)
