"""Tests for the azsigner command-line interface."""

import pytest
from click.testing import CliRunner

from azsigner.auth.canonicalizer import RequestDescriptor
from azsigner.auth.credentials import Credentials
from azsigner.auth.signer import sign_request
from azsigner.cli import cli

KEY = "dGVzdGtleQ=="
URL = "https://testaccount.blob.core.windows.net/mycontainer?restype=container&comp=list"
DATE = "Mon, 02 Jan 2006 15:04:05 GMT"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ["AZ_ACCOUNT_NAME", "AZ_SHARED_KEY", "AZSIGNER_ACCOUNT_NAME", "AZSIGNER_SHARED_KEY"]:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def runner():
    return CliRunner()


def expected_header(*headers):
    creds = Credentials.from_base64("testaccount", KEY, "blob")
    return sign_request(creds, RequestDescriptor.create("GET", URL, list(headers)))


class TestSignCommand:
    """Test the sign command."""

    def test_sign(self, runner):
        result = runner.invoke(cli, [
            "sign", "GET", URL,
            "--account", "testaccount", "--key", KEY,
            "-H", f"x-ms-date: {DATE}",
            "--api-version", "2024-08-04",
        ])

        assert result.exit_code == 0, result.output
        header = expected_header(("x-ms-date", DATE), ("x-ms-version", "2024-08-04"))
        assert f"Authorization: {header}" in result.output
        assert "x-ms-version: 2024-08-04" in result.output

    def test_sign_show_string(self, runner):
        result = runner.invoke(cli, [
            "sign", "get", URL, "-a", "testaccount", "-k", KEY, "--show-string",
        ])

        assert result.exit_code == 0, result.output
        assert "String to sign:" in result.output
        assert "/testaccount/mycontainer\\ncomp:list\\nrestype:container" in result.output

    def test_sign_from_environment(self, runner, monkeypatch):
        monkeypatch.setenv("AZ_ACCOUNT_NAME", "testaccount")
        monkeypatch.setenv("AZ_SHARED_KEY", KEY)

        result = runner.invoke(cli, ["sign", "GET", URL, "-H", f"x-ms-date: {DATE}"])

        assert result.exit_code == 0, result.output
        assert f"Authorization: {expected_header(('x-ms-date', DATE))}" in result.output

    def test_sign_with_date_flag(self, runner):
        result = runner.invoke(cli, ["sign", "GET", URL, "-a", "testaccount", "-k", KEY, "--date"])

        assert result.exit_code == 0, result.output
        assert "x-ms-date: " in result.output

    def test_sign_bad_key(self, runner):
        result = runner.invoke(cli, ["sign", "GET", URL, "-a", "testaccount", "-k", "T3=$stK3y@"])

        assert result.exit_code == 1
        assert "decode account key" in result.output

    def test_sign_bad_query(self, runner):
        result = runner.invoke(cli, [
            "sign", "GET", "https://x.blob.core.windows.net/c?a=%zz", "-a", "testaccount", "-k", KEY,
        ])

        assert result.exit_code == 1
        assert "failed to parse query params" in result.output

    def test_sign_missing_account(self, runner):
        result = runner.invoke(cli, ["sign", "GET", URL])

        assert result.exit_code == 2
        assert "Account name and key are required" in result.output

    def test_sign_bad_header_option(self, runner):
        result = runner.invoke(cli, ["sign", "GET", URL, "-a", "testaccount", "-k", KEY, "-H", "no-colon"])

        assert result.exit_code == 2


class TestVerifyCommand:
    """Test the verify command."""

    def test_verify_match(self, runner):
        header = expected_header(("x-ms-date", DATE))

        result = runner.invoke(cli, [
            "verify", "GET", URL, "-a", "testaccount", "-k", KEY,
            "-H", f"x-ms-date: {DATE}", "--authorization", header,
        ])

        assert result.exit_code == 0, result.output
        assert "[OK] Signature matches" in result.output

    def test_verify_mismatch(self, runner):
        header = expected_header(("x-ms-date", DATE))

        result = runner.invoke(cli, [
            "verify", "GET", URL, "-a", "testaccount", "-k", KEY,
            "-H", "x-ms-date: Tue, 03 Jan 2006 15:04:05 GMT", "--authorization", header,
        ])

        assert result.exit_code == 1
        assert "does not match" in result.output

    def test_verify_malformed_header(self, runner):
        result = runner.invoke(cli, [
            "verify", "GET", URL, "-a", "testaccount", "-k", KEY, "--authorization", "Bearer abc",
        ])

        assert result.exit_code == 1
        assert "Expected SharedKey scheme" in result.output

    def test_verify_non_ascii_signature(self, runner):
        result = runner.invoke(cli, [
            "verify", "GET", URL, "-a", "testaccount", "-k", KEY, "--authorization", "SharedKey testaccount:sïg",
        ])

        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "[FAIL] Signature does not match" in result.output


class TestVersion:
    def test_version_option(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "azsigner" in result.output
