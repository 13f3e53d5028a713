"""Tests for environment token lookup."""

from github_inbox_agent.credentials import EnvTokenProvider


class TestEnvTokenProvider:
    def test_default_account(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", " ghp_default \n")
        assert EnvTokenProvider().get_token("default") == "ghp_default"

    def test_named_account_key(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN_WORK_GHE", "ghp_work")
        assert EnvTokenProvider().get_token("work-ghe") == "ghp_work"

    def test_missing_or_blank(self, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.setenv("GITHUB_TOKEN_BLANK", "  ")
        provider = EnvTokenProvider()

        assert provider.get_token("default") is None
        assert provider.get_token("blank") is None

    def test_accounts_with_tokens(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "a")
        monkeypatch.delenv("GITHUB_TOKEN_OTHER", raising=False)

        assert EnvTokenProvider().accounts_with_tokens(["default", "other"]) == ["default"]
