"""Report serialization (JSON or YAML)."""

from __future__ import annotations

import json
from typing import Any, Dict, Union

import yaml

FORMATS = ("json", "yaml")


def _as_dict(report: Any) -> Union[Dict[str, Any], Any]:
    return report.to_dict() if hasattr(report, "to_dict") else report


def encode(report: Any, fmt: str = "json", compact: bool = False) -> str:
    """Encode a report (or plain dict) as JSON or YAML text ending in a newline."""
    data = _as_dict(report)
    if fmt == "yaml":
        return yaml.safe_dump(data, sort_keys=False, default_flow_style=False, allow_unicode=True)
    if fmt != "json":
        raise ValueError(f"unknown output format {fmt!r}; expected one of {', '.join(FORMATS)}")
    if compact:
        return json.dumps(data, separators=(",", ":"), default=str) + "\n"
    return json.dumps(data, indent=2, default=str) + "\n"
