from __future__ import annotations

import copy
import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from jsonschema import validators
from jsonschema.exceptions import SchemaError
from packaging.version import InvalidVersion, Version

__all__ = ["Toolpack", "ToolpackLoader", "ToolpackValidationError"]


class ToolpackValidationError(Exception):
    """Raised when a toolpack definition fails validation."""


LOGGER = logging.getLogger(__name__)

_TOOL_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*(?:\.[a-z0-9_-]+)*$")
_LEGACY_KEYS = {"input_schema": "inputSchema"}
_REQUIRED_FIELDS = ("name", "version", "description", "inputSchema", "execution")


@dataclass(frozen=True)
class Toolpack:
    """In-memory representation of one ``*.tool.yaml`` file."""

    name: str
    version: str
    description: str
    input_schema: Mapping[str, Any]
    execution: Mapping[str, Any]
    source_path: Path | None = None

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        source_path: Path,
        *,
        schema_cache: dict[Path, Any] | None = None,
    ) -> Toolpack:
        if not isinstance(data, Mapping):
            raise ToolpackValidationError(
                f"Toolpack {source_path} must be a YAML mapping, not {type(data).__name__}"
            )

        missing = [field for field in _REQUIRED_FIELDS if field not in data]
        if missing:
            raise ToolpackValidationError(
                f"Toolpack {source_path} missing required field(s): {', '.join(missing)}"
            )

        name = _require_str(data["name"], "name", source_path)
        if not _TOOL_NAME_PATTERN.fullmatch(name):
            raise ToolpackValidationError(
                f"Toolpack {source_path} name '{name}' must be lowercase "
                "(letters, digits, '_', '-', '.')"
            )
        version = _require_str(data["version"], "version", source_path)
        _validate_version(version, name)
        description = data["description"]
        if not isinstance(description, str):
            raise ToolpackValidationError(f"Toolpack {name} description must be a string")

        input_schema = _resolve_schema(
            data["inputSchema"],
            source_path.parent,
            name,
            schema_cache if schema_cache is not None else {},
        )
        execution = _validate_execution(name, data["execution"])

        return cls(
            name=name,
            version=version,
            description=description.strip(),
            input_schema=input_schema,
            execution=execution,
            source_path=source_path,
        )

    def descriptor(self) -> dict[str, Any]:
        """Return the wire-level tool descriptor."""

        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": copy.deepcopy(dict(self.input_schema)),
        }


class ToolpackLoader:
    """Load toolpack definitions from a directory tree."""

    def __init__(self) -> None:
        self._toolpacks: dict[str, Toolpack] = {}

    def load_dir(self, directory: Path | str) -> None:
        base_dir = Path(directory).expanduser().resolve()
        if not base_dir.exists():
            raise ToolpackValidationError(f"Toolpacks directory not found: {base_dir}")

        toolpacks: dict[str, Toolpack] = {}
        schema_cache: dict[Path, Any] = {}
        for path in sorted(base_dir.rglob("*.tool.yaml")):
            with path.open("r", encoding="utf-8") as handle:
                try:
                    data = yaml.safe_load(handle)
                except yaml.YAMLError as exc:
                    raise ToolpackValidationError(
                        f"Toolpack {path} is not valid YAML: {exc}"
                    ) from exc

            toolpack = Toolpack.from_dict(
                _apply_legacy_shim(data, path),
                path,
                schema_cache=schema_cache,
            )
            if toolpack.name in toolpacks:
                raise ToolpackValidationError(
                    f"Duplicate toolpack name '{toolpack.name}' found in {path}"
                )
            toolpacks[toolpack.name] = toolpack

        self._toolpacks = dict(sorted(toolpacks.items()))

    def list(self) -> list[Toolpack]:
        return list(self._toolpacks.values())

    def get(self, name: str) -> Toolpack:
        return self._toolpacks[name]


def _require_str(value: Any, field: str, source: Path) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ToolpackValidationError(f"Toolpack {source} field '{field}' must be a non-empty string")
    return value.strip()


def _require_mapping(value: Any, field: str, name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ToolpackValidationError(f"Toolpack {name} field '{field}' must be a mapping")
    return value


def _validate_version(version: str, name: str) -> None:
    try:
        parsed = Version(version)
    except InvalidVersion as exc:
        raise ToolpackValidationError(
            f"Toolpack {name} version must follow semantic versioning: {exc}"
        ) from exc
    if len(parsed.release) != 3:
        raise ToolpackValidationError(
            f"Toolpack {name} version '{version}' must include major.minor.patch"
        )


def _resolve_schema(
    schema_spec: Any,
    base_dir: Path,
    name: str,
    cache: dict[Path, Any],
) -> Mapping[str, Any]:
    if not isinstance(schema_spec, Mapping):
        raise ToolpackValidationError(f"Toolpack {name} inputSchema must be a mapping")
    resolved = _inline_file_refs(schema_spec, base_dir, name, cache)
    try:
        validators.validator_for(resolved).check_schema(resolved)
    except SchemaError as exc:
        raise ToolpackValidationError(
            f"Toolpack {name} inputSchema failed validation: {exc.message}"
        ) from exc
    if resolved.get("type", "object") != "object":
        raise ToolpackValidationError(f"Toolpack {name} inputSchema must describe an object")
    return resolved


def _inline_file_refs(node: Any, base_dir: Path, name: str, cache: dict[Path, Any]) -> Any:
    """Replace ``{"$ref": "file.json"}`` nodes with the referenced document.

    Fragment-only references (``#/...``) are left for the validator to resolve.
    """

    if isinstance(node, Mapping):
        ref = node.get("$ref")
        if set(node) == {"$ref"} and isinstance(ref, str) and not ref.startswith("#"):
            return _load_ref(ref, base_dir, name, cache)
        return {key: _inline_file_refs(value, base_dir, name, cache) for key, value in node.items()}
    if isinstance(node, list):
        return [_inline_file_refs(item, base_dir, name, cache) for item in node]
    return node


def _load_ref(reference: str, base_dir: Path, name: str, cache: dict[Path, Any]) -> Any:
    path_part, _, fragment = reference.partition("#")
    target = Path(path_part)
    if not target.is_absolute():
        target = (base_dir / target).resolve()

    if target not in cache:
        if not target.exists():
            raise ToolpackValidationError(f"Toolpack {name} schema reference not found: {reference}")
        try:
            text = target.read_text(encoding="utf-8")
            if target.suffix in {".yaml", ".yml"}:
                document = yaml.safe_load(text) or {}
            else:
                document = json.loads(text)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ToolpackValidationError(
                f"Toolpack {name} failed to load schema {reference}: {exc}"
            ) from exc
        cache[target] = _inline_file_refs(document, target.parent, name, cache)

    document = copy.deepcopy(cache[target])
    for part in [p for p in fragment.split("/") if p]:
        key = part.replace("~1", "/").replace("~0", "~")
        try:
            document = document[int(key)] if isinstance(document, list) else document[key]
        except (KeyError, IndexError, ValueError, TypeError) as exc:
            raise ToolpackValidationError(
                f"Toolpack {name} schema pointer '{fragment}' not found in {target}"
            ) from exc
    return document


def _apply_legacy_shim(data: Any, source_path: Path) -> Any:
    if not isinstance(data, Mapping):
        return data
    renamed = {
        legacy: modern
        for legacy, modern in _LEGACY_KEYS.items()
        if legacy in data and modern not in data
    }
    if not renamed:
        return data
    LOGGER.warning(
        "Toolpack %s uses deprecated key(s) %s; rename to camelCase",
        source_path,
        ", ".join(sorted(renamed)),
    )
    return {renamed.get(key, key): value for key, value in data.items()}


def _validate_execution(name: str, execution_raw: Any) -> dict[str, Any]:
    execution = _require_mapping(execution_raw, "execution", name)
    kind = execution.get("kind")
    if kind != "python":
        raise ToolpackValidationError(f"Toolpack {name} execution.kind must be 'python'")
    module = execution.get("module")
    if not isinstance(module, str) or not module:
        raise ToolpackValidationError(f"Toolpack {name} execution.module must be a non-empty string")
    if ":" not in module or module.startswith(":") or module.endswith(":"):
        raise ToolpackValidationError(
            f"Toolpack {name} execution.module must use 'module:callable' format"
        )
    return dict(execution)
