"""
Tests for connection string construction and token encoding.
"""

import re
from urllib.parse import unquote, unquote_to_bytes, urlsplit

import pytest

from dsqlbench.config import settings
from dsqlbench.db.connection import (
    ConnectionDescriptor,
    EncodingError,
    build_connection_string,
    encode_token,
)

HOST = "abcdefghijklmnop.dsql.us-east-1.on.aws"


class TestEncodeToken:
    """Tests for percent-encoding of auth tokens."""

    @pytest.mark.parametrize(
        "raw, encoded",
        [
            ("/", "%2F"),
            ("+", "%2B"),
            ("=", "%3D"),
            (":", "%3A"),
            ("a-b_c.d~e", "a%2Db%5Fc%2Ed%7Ee"),
        ],
    )
    def test_reserved_characters_are_escaped(self, raw, encoded):
        assert encode_token(raw) == encoded

    def test_alphanumerics_pass_through(self):
        assert encode_token("AbC123xyz") == "AbC123xyz"

    def test_multibyte_characters_are_escaped_per_byte(self):
        assert encode_token("é") == "%C3%A9"

    def test_output_only_contains_safe_characters(self):
        token = "host/?Action=DbConnectAdmin&X-Amz-Signature=ab+cd/ef==:ü"
        assert re.fullmatch(r"(?:[A-Za-z0-9]|%[0-9A-F]{2})+", encode_token(token))

    def test_empty_token_rejected(self):
        with pytest.raises(EncodingError) as excinfo:
            encode_token("")
        assert excinfo.value.field == "token"

    def test_token_that_is_not_utf8_encodable_rejected(self):
        with pytest.raises(EncodingError) as excinfo:
            build_connection_string("admin", "abc\udc80", HOST, 5432, "postgres")
        assert excinfo.value.field == "token"
        assert isinstance(excinfo.value.__cause__, UnicodeEncodeError)

    def test_user_that_is_not_utf8_encodable_rejected(self):
        with pytest.raises(EncodingError) as excinfo:
            build_connection_string("adm\udc80", "token", HOST, 5432, "postgres")
        assert excinfo.value.field == "user"


class TestBuildConnectionString:
    """Tests for the postgres:// URI."""

    def test_format(self):
        dsn = build_connection_string("admin", "secret", HOST, 5432, "postgres")
        assert dsn == f"postgres://admin:secret@{HOST}:5432/postgres?sslmode=require"

    @pytest.mark.parametrize(
        "token",
        [
            "a/b+c=d:e",
            "abc.dsql.us-east-1.on.aws/?Action=DbConnectAdmin&X-Amz-Credential=AKIA%2F20250101",
            "token with spaces and ünïcödé 漢字 ✓",
            "@@::==//++",
        ],
    )
    def test_token_round_trips(self, token):
        dsn = build_connection_string("admin", token, HOST, 5432, "postgres")
        parts = urlsplit(dsn)

        assert parts.scheme == "postgres"
        assert parts.hostname == HOST
        assert parts.port == 5432
        assert parts.username == "admin"
        assert unquote(parts.password) == token
        assert unquote_to_bytes(parts.password) == token.encode("utf-8")

    def test_unencoded_delimiters_never_reach_the_uri(self):
        dsn = build_connection_string("admin", "a@b:c/d", HOST, 5432, "postgres")
        assert dsn.count("@") == 1
        assert dsn.count("/") == 3

    @pytest.mark.parametrize(
        "host",
        ["", "   ", "bad host", "host/path", "user@host", "host:5432", "host?x"],
    )
    def test_invalid_host_rejected(self, host):
        with pytest.raises(EncodingError) as excinfo:
            build_connection_string("admin", "token", host, 5432, "postgres")
        assert excinfo.value.field == "host"

    @pytest.mark.parametrize("port", [0, -1, 65536, "5432", True])
    def test_invalid_port_rejected(self, port):
        with pytest.raises(EncodingError) as excinfo:
            build_connection_string("admin", "token", HOST, port, "postgres")
        assert excinfo.value.field == "port"

    def test_empty_user_rejected(self):
        with pytest.raises(EncodingError):
            build_connection_string("", "token", HOST, 5432, "postgres")

    def test_empty_database_rejected(self):
        with pytest.raises(EncodingError):
            build_connection_string("admin", "token", HOST, 5432, "")


class TestConnectionDescriptor:
    """Tests for descriptor construction from settings."""

    def test_from_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "DB_HOST", "cluster1.dsql.eu-west-1.on.aws")
        monkeypatch.setattr(settings, "DB_PORT", 5432)
        monkeypatch.setattr(settings, "DB_USER", "Admin")
        monkeypatch.setattr(settings, "DB_NAME", "postgres")
        monkeypatch.setattr(settings, "AWS_REGION", None)

        descriptor = ConnectionDescriptor.from_settings()

        assert descriptor.host == "cluster1.dsql.eu-west-1.on.aws"
        assert descriptor.region == "eu-west-1"
        assert descriptor.admin is True

    def test_regular_user_is_not_admin(self, monkeypatch):
        monkeypatch.setattr(settings, "DB_HOST", HOST)
        monkeypatch.setattr(settings, "DB_USER", "app_user")

        assert ConnectionDescriptor.from_settings().admin is False

    def test_missing_host(self, monkeypatch):
        monkeypatch.setattr(settings, "DB_HOST", None)

        with pytest.raises(EncodingError):
            ConnectionDescriptor.from_settings()

    def test_descriptor_is_immutable(self):
        descriptor = ConnectionDescriptor(HOST, 5432, "admin", "postgres", "us-east-1", True)
        with pytest.raises(AttributeError):
            descriptor.host = "other"

    def test_connection_string_uses_builder(self):
        descriptor = ConnectionDescriptor(HOST, 5432, "admin", "postgres", "us-east-1", True)
        assert descriptor.connection_string("a=b") == (
            f"postgres://admin:a%3Db@{HOST}:5432/postgres?sslmode=require"
        )

    @pytest.mark.parametrize(
        "port, user, database, field",
        [
            (0, "admin", "postgres", "port"),
            (70000, "admin", "postgres", "port"),
            (5432, "", "postgres", "user"),
            (5432, "admin", "", "database"),
        ],
    )
    def test_validate_rejects_bad_parts(self, port, user, database, field):
        descriptor = ConnectionDescriptor(HOST, port, user, database, "us-east-1")

        with pytest.raises(EncodingError) as excinfo:
            descriptor.validate()

        assert excinfo.value.field == field

    def test_validate_accepts_good_descriptor(self):
        ConnectionDescriptor(HOST, 5432, "admin", "postgres", "us-east-1", True).validate()
