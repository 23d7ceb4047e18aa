"""Tests for report encoding."""

from __future__ import annotations

import json

import pytest
import yaml

from ghsync.errors import ResolutionError
from ghsync.models import ResolveReport
from ghsync.output import encode


@pytest.fixture
def report():
    return ResolveReport(repository="octo/repo", commitish="main", sha="a" * 40, branches=["main"])


class TestEncode:
    def test_json_is_indented(self, report):
        text = encode(report)
        assert text.endswith("}\n")
        assert '\n  "repository": "octo/repo"' in text
        assert json.loads(text) == report.to_dict()

    def test_compact_json(self, report):
        text = encode(report, compact=True)
        assert text == json.dumps(report.to_dict(), separators=(",", ":")) + "\n"

    def test_yaml_keeps_field_order(self, report):
        text = encode(report, "yaml")
        assert text.splitlines()[0] == "repository: octo/repo"
        assert yaml.safe_load(text) == report.to_dict()

    def test_errors_are_strings(self):
        failed = ResolveReport(repository="octo/repo", commitish="nope")
        failed.set_error(ResolutionError("nope"))
        assert json.loads(encode(failed))["error"] == "commitish 'nope' does not exist"

    def test_plain_dict(self):
        assert json.loads(encode({"a": 1})) == {"a": 1}

    def test_unknown_format(self, report):
        with pytest.raises(ValueError, match="unknown output format"):
            encode(report, "xml")
