"""Loading of JSON/YAML configuration documents."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Union

import yaml

from cgprovision.common.errors import DecodeError


def parse_document(text: str, source: str, json_only: bool = False) -> Any:
    """Decode ``text`` as JSON, or as YAML unless ``json_only`` is set.

    Raises:
        DecodeError: the document is malformed.
    """
    try:
        if json_only:
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise DecodeError(f"decode {source}: {exc}") from exc


def load_document(path: Union[str, Path]) -> Any:
    """Read a configuration file; ``.json`` files are strict JSON, others YAML.

    Raises:
        OSError: the file cannot be read.
        DecodeError: the file is malformed.
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    return parse_document(text, str(path), json_only=path.suffix == ".json")
