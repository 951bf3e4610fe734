"""Tests for the python -m ebay_seller diagnostics CLI."""

import json
import logging
from unittest.mock import AsyncMock

import pytest

from core.oauth2.models import Credential, CredentialKind, UserTokenPair
from ebay_seller import __main__ as cli
from ebay_seller.client import EbaySellerClient


@pytest.fixture(autouse=True)
def cli_environment(monkeypatch, tmp_path):
    monkeypatch.setattr(cli, "PROJECT_ROOT", tmp_path)
    monkeypatch.setattr("config.config.DEFAULT_CONFIG_FILE", tmp_path / "absent.yaml")
    monkeypatch.setenv("EBAY_CLIENT_ID", "my-app-id")
    monkeypatch.setenv("EBAY_CLIENT_SECRET", "my-cert-id")
    monkeypatch.setenv("EBAY_REDIRECT_URI", "My_Co-MyApp-SBX-abcdef")

    root = logging.getLogger()
    handlers = root.handlers[:]
    yield
    root.handlers[:] = handlers


def _stdout_json(capsys):
    return json.loads(capsys.readouterr().out)


def _pair():
    return UserTokenPair(
        access=Credential.from_lifetime(CredentialKind.USER_ACCESS, "user-access", 7200),
        refresh=Credential.from_lifetime(CredentialKind.USER_REFRESH, "user-refresh", 86400),
    )


class TestParser:
    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 1
        assert "usage" in capsys.readouterr().err

    def test_exchange_code_requires_code(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["exchange-code"])


class TestCommands:
    def test_token_info(self, capsys):
        assert cli.main(["token-info"]) == 0

        output = _stdout_json(capsys)
        assert output["environment"] == "sandbox"
        assert output["has_user_token"] is False

    def test_token_info_with_seeded_refresh_token(self, capsys, monkeypatch):
        monkeypatch.setenv("EBAY_USER_REFRESH_TOKEN", "v^1.1#refresh-secret")

        assert cli.main(["token-info"]) == 0

        raw = capsys.readouterr().out
        assert json.loads(raw)["has_user_token"] is True
        assert "refresh-secret" not in raw

    def test_authorize_url(self, capsys):
        assert cli.main(["authorize-url", "--state", "xyz"]) == 0

        url = _stdout_json(capsys)["authorization_url"]
        assert url.startswith("https://auth.sandbox.ebay.com/oauth2/authorize?")
        assert "state=xyz" in url

    def test_authorize_url_without_redirect_fails(self, capsys, monkeypatch):
        monkeypatch.delenv("EBAY_REDIRECT_URI")

        assert cli.main(["authorize-url"]) == 1

        output = _stdout_json(capsys)
        assert "redirect_uri" in output["error"]
        assert output["category"] == "permanent"

    def test_exchange_code_hides_tokens_by_default(self, capsys, monkeypatch):
        monkeypatch.setattr(EbaySellerClient, "exchange_authorization_code", AsyncMock(return_value=_pair()))

        assert cli.main(["exchange-code", "abc"]) == 0

        output = _stdout_json(capsys)
        assert "tokens" not in output

    def test_exchange_code_prints_tokens_on_request(self, capsys, monkeypatch):
        monkeypatch.setattr(EbaySellerClient, "exchange_authorization_code", AsyncMock(return_value=_pair()))

        assert cli.main(["exchange-code", "abc", "--print-tokens"]) == 0

        tokens = _stdout_json(capsys)["tokens"]
        assert tokens == {
            "EBAY_USER_ACCESS_TOKEN": "user-access",
            "EBAY_USER_REFRESH_TOKEN": "user-refresh",
        }

    def test_invalid_configuration(self, capsys, monkeypatch):
        monkeypatch.setenv("EBAY_ENVIRONMENT", "staging")

        assert cli.main(["token-info"]) == 1

        assert "environment" in _stdout_json(capsys)["error"]

    def test_logs_go_to_stderr(self, capsys):
        cli.main(["--log-level", "DEBUG", "token-info"])

        captured = capsys.readouterr()
        json.loads(captured.out)
        assert "Initialized eBay seller client" in captured.err
