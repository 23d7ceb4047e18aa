"""Tests for credentials module."""

from __future__ import annotations

import subprocess

import pytest

from ghsync.credentials import (
    Credentials,
    CredentialsError,
    GitHubCredentials,
    find_token,
    get_user_credentials_path,
    load_credentials,
    resolve_token,
)


def _runner(stdout="", returncode=0, calls=None):
    def run(args, **kwargs):
        if calls is not None:
            calls.append(args)
        return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr="")

    return run


def _missing_gh(args, **kwargs):
    raise FileNotFoundError("gh")


class TestCredentialsModels:
    """Tests for credential model classes."""

    def test_defaults(self):
        """Credentials has empty nested defaults."""
        creds = Credentials()
        assert isinstance(creds.github, GitHubCredentials)
        assert creds.github.token == ""


class TestLoadCredentials:
    """Tests for load_credentials function."""

    def test_default_path(self, isolated_env):
        """Credentials live next to the user config."""
        assert get_user_credentials_path() == isolated_env / ".ghsync" / "credentials.toml"

    def test_missing_file(self, tmp_path):
        """A missing file gives empty credentials."""
        assert load_credentials(tmp_path / "nope.toml").github.token == ""

    def test_reads_token(self, tmp_path):
        """The [github] table supplies the token."""
        path = tmp_path / "credentials.toml"
        path.write_text('[github]\ntoken = "ghp_file"\n')
        assert load_credentials(path).github.token == "ghp_file"

    def test_invalid_toml(self, tmp_path):
        """Unparseable files raise CredentialsError."""
        path = tmp_path / "credentials.toml"
        path.write_text("[github\n")
        with pytest.raises(CredentialsError, match="Error loading credentials"):
            load_credentials(path)

    def test_schema_mismatch(self, tmp_path):
        """Wrongly typed values raise CredentialsError."""
        path = tmp_path / "credentials.toml"
        path.write_text("[github]\ntoken = [1, 2]\n")
        with pytest.raises(CredentialsError):
            load_credentials(path)


class TestFindToken:
    """Tests for token source precedence."""

    def test_explicit_literal(self, tmp_path):
        """--token wins over everything else."""
        token, source = find_token("ghp_flag", env={"GH_TOKEN": "ghp_env"}, runner=_missing_gh)
        assert (token, source) == ("ghp_flag", "--token")

    def test_explicit_file(self, tmp_path):
        """--token naming an existing file reads the file."""
        path = tmp_path / "token.txt"
        path.write_text("ghp_from_file\n")
        assert find_token(str(path), env={}) == ("ghp_from_file", "--token")

    @pytest.mark.parametrize("name", ["GHSYNC_TOKEN", "GH_TOKEN", "GITHUB_TOKEN"])
    def test_environment(self, name, tmp_path):
        """Each supported variable is honoured."""
        token, source = find_token(env={name: " ghp_env "}, credentials_path=tmp_path / "none.toml")
        assert (token, source) == ("ghp_env", name)

    def test_environment_order(self, tmp_path):
        """GHSYNC_TOKEN beats GH_TOKEN beats GITHUB_TOKEN."""
        env = {"GITHUB_TOKEN": "c", "GH_TOKEN": "b", "GHSYNC_TOKEN": "a"}
        assert find_token(env=env)[0] == "a"
        del env["GHSYNC_TOKEN"]
        assert find_token(env=env)[0] == "b"

    def test_credentials_file(self, tmp_path):
        """The credentials file is used when the environment is empty."""
        path = tmp_path / "credentials.toml"
        path.write_text('[github]\ntoken = "ghp_file"\n')
        calls = []
        token, source = find_token(env={}, credentials_path=path, runner=_runner("ghp_cli", calls=calls))
        assert (token, source) == ("ghp_file", "credentials.toml")
        assert calls == []

    def test_gh_cli_fallback(self, tmp_path):
        """`gh auth token` is the last resort."""
        calls = []
        token, source = find_token(
            env={}, credentials_path=tmp_path / "none.toml", runner=_runner("ghp_cli\n", calls=calls)
        )
        assert (token, source) == ("ghp_cli", "gh auth token")
        assert calls == [["gh", "auth", "token"]]

    def test_gh_cli_disabled(self, tmp_path):
        """allow_cli=False never runs gh."""
        calls = []
        result = find_token(env={}, credentials_path=tmp_path / "none.toml", allow_cli=False,
                            runner=_runner("ghp_cli", calls=calls))
        assert result == ("", "")
        assert calls == []

    def test_gh_cli_not_logged_in(self, tmp_path):
        """A failing gh command yields no token."""
        result = find_token(env={}, credentials_path=tmp_path / "none.toml", runner=_runner("", returncode=1))
        assert result == ("", "")

    def test_gh_cli_not_installed(self, tmp_path):
        """A missing gh binary yields no token."""
        assert find_token(env={}, credentials_path=tmp_path / "none.toml", runner=_missing_gh) == ("", "")


class TestResolveToken:
    """Tests for resolve_token function."""

    def test_returns_token(self):
        assert resolve_token("ghp_flag", env={}) == "ghp_flag"

    def test_raises_without_token(self, tmp_path):
        with pytest.raises(CredentialsError, match="No GitHub token found"):
            resolve_token(env={}, credentials_path=tmp_path / "none.toml", allow_cli=False)
