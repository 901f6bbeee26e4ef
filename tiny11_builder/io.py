"""YAML/JSON document loading.

Theme and preinstall definitions live next to their assets as
``theme.json``/``theme.yaml`` or ``preinstall.json``/``preinstall.yaml``.
These helpers read either format into a plain mapping; validation is left
to the pydantic models of each caller.
"""

import json
from pathlib import Path
from typing import Any

import yaml

DOCUMENT_SUFFIXES = (".json", ".yaml", ".yml")


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file and return its contents as a dict.

    Files written by Windows editors often start with a UTF-8 BOM, so the
    file is decoded with ``utf-8-sig``.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
        ValueError: If the document is not an object.
    """
    with open(path, encoding="utf-8-sig") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def load_document(path: Path) -> dict[str, Any]:
    """Load a YAML or JSON file, chosen by extension.

    Raises:
        ValueError: If the extension is not .json, .yaml or .yml.
    """
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return load_yaml(path)
    elif suffix == ".json":
        return load_json(path)
    else:
        raise ValueError(f"Unsupported file extension '{suffix}'. Use .yaml, .yml, or .json")


def find_document(directory: Path, stem: str) -> Path | None:
    """Return the first ``<stem>.json``/``.yaml``/``.yml`` in ``directory``."""
    for suffix in DOCUMENT_SUFFIXES:
        candidate = directory / f"{stem}{suffix}"
        if candidate.is_file():
            return candidate
    return None


__all__ = ["DOCUMENT_SUFFIXES", "find_document", "load_document", "load_json", "load_yaml"]
