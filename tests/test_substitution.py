"""Tests for `${...}` substitution, secrets and the variable store."""

import threading

import pytest

from robogo.core.errors import ErrorType, RobogoError
from robogo.core.models import SecretConfig
from robogo.core.substitution import (
    MISSING,
    SecretStore,
    VariableStore,
    VariableSubstitutor,
    lookup_path,
    stringify,
)


class TestLookupPath:
    def test_paths(self):
        variables = {"user": {"name": "bob", "tags": ["a", "b"]}, "rows": [{"id": 7}]}

        assert lookup_path(variables, "user.name") == "bob"
        assert lookup_path(variables, "user.tags[1]") == "b"
        assert lookup_path(variables, "rows[0].id") == 7
        assert lookup_path(variables, "rows.0.id") == 7

    def test_missing(self):
        variables = {"user": {"name": "bob"}, "rows": []}

        assert lookup_path(variables, "user.age") is MISSING
        assert lookup_path(variables, "rows[3]") is MISSING
        assert lookup_path(variables, "user.name.first") is MISSING
        assert lookup_path(variables, "") is MISSING

    def test_literal_dotted_key_wins(self):
        assert lookup_path({"a.b": 1, "a": {"b": 2}}, "a.b") == 1


class TestStringify:
    @pytest.mark.parametrize(
        "value,expected",
        [(None, ""), (True, "true"), (False, "false"), (3, "3"), ({"a": 1}, '{"a": 1}'), ([1, 2], "[1, 2]")],
    )
    def test_stringify(self, value, expected):
        assert stringify(value) == expected


class TestVariableSubstitutor:
    def test_embedded_placeholders(self):
        sub = VariableSubstitutor()

        assert sub.substitute_string("id=${id}, ok=${ok}", {"id": 5, "ok": True}) == "id=5, ok=true"

    def test_lone_placeholder_keeps_type(self):
        sub = VariableSubstitutor()

        assert sub.substitute_string("${items}", {"items": [1, 2]}) == [1, 2]
        assert sub.substitute_string("${n}", {"n": 3}) == 3

    def test_unknown_placeholders_left_intact(self):
        sub = VariableSubstitutor()

        assert sub.substitute_string("${nope}", {}) == "${nope}"
        assert sub.substitute_string("a ${nope} b", {}) == "a ${nope} b"

    def test_recursive_substitution(self):
        sub = VariableSubstitutor()

        value = sub.substitute({"url": "http://${host}", "args": ["${port}", 1]}, {"host": "h", "port": 80})

        assert value == {"url": "http://h", "args": [80, 1]}

    def test_substitute_text_always_string(self):
        assert VariableSubstitutor().substitute_text("${n}", {"n": 3}) == "3"

    def test_secrets_namespace(self):
        secrets = SecretStore()
        secrets.add("token", "abc")
        sub = VariableSubstitutor(secrets)

        assert sub.substitute_string("Bearer ${SECRETS.token}", {}) == "Bearer abc"
        assert sub.substitute_string("${SECRETS.other}", {}) == "${SECRETS.other}"


class TestSecretStore:
    def test_from_config_inline_and_file(self, tmp_path):
        (tmp_path / "pw.txt").write_text("hunter2\n", encoding="utf-8")

        store = SecretStore.from_config(
            {
                "token": SecretConfig(value="abc"),
                "password": SecretConfig(file="pw.txt", mask_output=False),
            },
            base_dir=tmp_path,
        )

        assert store.get_secret("token") == "abc"
        assert store.get_secret("password") == "hunter2"
        assert store.get_secret_info("token") == ("inline", True, True)
        assert store.get_secret_info("password")[0].startswith("file:")
        assert not store.is_secret_masked("password")
        assert store.list_secrets() == ["password", "token"]
        assert store.get_secret_info("missing") == ("", False, False)

    def test_unreadable_file_is_security_error(self, tmp_path):
        with pytest.raises(RobogoError) as exc_info:
            SecretStore.from_config({"key": SecretConfig(file="nope.txt")}, base_dir=tmp_path)

        assert exc_info.value.type == ErrorType.SECURITY
        assert exc_info.value.details["secret"] == "key"

    def test_mask_output(self):
        store = SecretStore()
        store.add("short", "abc")
        store.add("long", "abcdef")
        store.add("visible", "public", mask_output=False)

        assert store.mask_output("x abcdef y abc public") == "x [MASKED] y [MASKED] public"
        assert store.mask_output("") == ""


class TestVariableStore:
    def test_basic_operations(self):
        store = VariableStore({"a": 1})
        store.set("b", 2)

        assert store.get("a") == 1
        assert "b" in store
        store.delete("a")
        assert store.get("a", "default") == "default"

    def test_snapshot_is_a_copy(self):
        store = VariableStore()
        snapshot = store.snapshot()
        store.set("x", 1)

        assert "x" not in snapshot

    def test_concurrent_writes(self):
        store = VariableStore()

        def writer(n):
            for i in range(100):
                store.set(f"{n}-{i}", i)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store.snapshot()) == 800
