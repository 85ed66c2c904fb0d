"""Feature manifest model.

A manifest (``devcontainer-feature.json`` style, JSON or YAML) describes a
feature: identity, options, container environment and mounts. Tooling uses
it to decide which installer to build; the installers never read it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from .errors import ValidationError


class MountType(str, Enum):
    BIND = "bind"
    VOLUME = "volume"


@dataclass(frozen=True)
class MountSpec:
    source: str
    target: str
    type: MountType

    def to_dict(self) -> Dict[str, Any]:
        return {"source": self.source, "target": self.target, "type": self.type.value}


@dataclass(frozen=True)
class BooleanOption:
    default: Optional[bool] = None
    description: Optional[str] = None

    type = "boolean"

    def check(self, name: str, value: Any) -> bool:
        if not isinstance(value, bool):
            raise ValidationError(f"Option {name} must be a boolean, got {value!r}")
        return value

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({"type": self.type, "default": self.default, "description": self.description})


@dataclass(frozen=True)
class StringOption:
    default: Optional[str] = None
    description: Optional[str] = None
    proposals: Optional[List[str]] = None
    enum: Optional[List[str]] = None

    type = "string"

    def check(self, name: str, value: Any) -> str:
        if not isinstance(value, str):
            raise ValidationError(f"Option {name} must be a string, got {value!r}")
        if self.enum is not None and value not in self.enum:
            raise ValidationError(f"Option {name} must be one of {self.enum}, got {value!r}")
        return value

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "type": self.type,
                "default": self.default,
                "description": self.description,
                "proposals": self.proposals,
                "enum": self.enum,
            }
        )


FeatureOption = Union[BooleanOption, StringOption]


@dataclass(frozen=True)
class FeatureManifest:
    id: str
    version: str
    name: str
    description: Optional[str] = None
    documentation_url: Optional[str] = None
    license_url: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    options: Dict[str, FeatureOption] = field(default_factory=dict)
    container_env: Dict[str, str] = field(default_factory=dict)
    privileged: Optional[bool] = None
    init: Optional[bool] = None
    cap_add: List[str] = field(default_factory=list)
    security_opt: List[str] = field(default_factory=list)
    entrypoint: Optional[str] = None
    customizations: Dict[str, Any] = field(default_factory=dict)
    depends_on: Dict[str, Dict[str, Union[bool, str]]] = field(default_factory=dict)
    installs_after: List[str] = field(default_factory=list)
    legacy_ids: List[str] = field(default_factory=list)
    deprecated: Optional[bool] = None
    mounts: List[MountSpec] = field(default_factory=list)

    def resolve_options(self, overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Option defaults merged with ``overrides``, each value type-checked."""

        overrides = dict(overrides or {})
        unknown = sorted(set(overrides) - set(self.options))
        if unknown:
            raise ValidationError(f"Unknown option(s) for {self.id}: {', '.join(unknown)}")

        resolved: Dict[str, Any] = {}
        for name, opt in self.options.items():
            if name in overrides:
                resolved[name] = opt.check(name, overrides[name])
            elif opt.default is not None:
                resolved[name] = opt.default
        return resolved

    def to_dict(self) -> Dict[str, Any]:
        raw: Dict[str, Any] = {
            "id": self.id,
            "version": self.version,
            "name": self.name,
            "description": self.description,
            "documentationURL": self.documentation_url,
            "licenseURL": self.license_url,
            "keywords": self.keywords or None,
            "options": {k: v.to_dict() for k, v in self.options.items()} or None,
            "containerEnv": self.container_env or None,
            "privileged": self.privileged,
            "init": self.init,
            "capAdd": self.cap_add or None,
            "securityOpt": self.security_opt or None,
            "entrypoint": self.entrypoint,
            "customizations": self.customizations or None,
            "dependsOn": self.depends_on or None,
            "installsAfter": self.installs_after or None,
            "legacyIds": self.legacy_ids or None,
            "deprecated": self.deprecated,
            "mounts": [m.to_dict() for m in self.mounts] or None,
        }
        return _drop_none(raw)


def _drop_none(d: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}


def _str(raw: Mapping[str, Any], key: str, *, required: bool = False) -> Optional[str]:
    value = raw.get(key)
    if value is None:
        if required:
            raise ValidationError(f"Manifest key '{key}' is required")
        return None
    if not isinstance(value, str) or (required and not value.strip()):
        raise ValidationError(f"Manifest key '{key}' must be a non-empty string")
    return value


def _bool(raw: Mapping[str, Any], key: str) -> Optional[bool]:
    value = raw.get(key)
    if value is not None and not isinstance(value, bool):
        raise ValidationError(f"Manifest key '{key}' must be a boolean")
    return value


def _str_list(raw: Mapping[str, Any], key: str) -> List[str]:
    value = raw.get(key)
    if value is None:
        return []
    # keywords are sometimes written as a comma separated string
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"Manifest key '{key}' must be a list of strings")
    return list(value)


def _mapping(raw: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"Manifest key '{key}' must be a mapping")
    return dict(value)


def parse_option(name: str, raw: Any) -> FeatureOption:
    if not isinstance(raw, dict):
        raise ValidationError(f"Option '{name}' must be a mapping")

    opt_type = raw.get("type")
    description = _str(raw, "description")

    if opt_type == "boolean":
        default = raw.get("default")
        if default is not None and not isinstance(default, bool):
            raise ValidationError(f"Option '{name}': default must be a boolean")
        return BooleanOption(default=default, description=description)

    if opt_type == "string":
        default = _str(raw, "default")
        proposals = _str_list(raw, "proposals") if "proposals" in raw else None
        enum = _str_list(raw, "enum") if "enum" in raw else None
        if proposals is not None and enum is not None:
            raise ValidationError(f"Option '{name}': 'proposals' and 'enum' are mutually exclusive")
        if enum is not None and default is not None and default not in enum:
            raise ValidationError(f"Option '{name}': default {default!r} is not in enum {enum}")
        return StringOption(default=default, description=description, proposals=proposals, enum=enum)

    raise ValidationError(f"Option '{name}': unsupported type {opt_type!r}")


def parse_mount(raw: Any) -> MountSpec:
    if not isinstance(raw, dict):
        raise ValidationError("Mount must be a mapping")
    source = _str(raw, "source", required=True)
    target = _str(raw, "target", required=True)
    try:
        mount_type = MountType(raw.get("type"))
    except ValueError as e:
        raise ValidationError(f"Mount type must be 'bind' or 'volume', got {raw.get('type')!r}") from e
    return MountSpec(source=source, target=target, type=mount_type)


def parse_manifest(raw: Mapping[str, Any]) -> FeatureManifest:
    if not isinstance(raw, dict):
        raise ValidationError("Manifest must be a mapping/object")

    container_env = _mapping(raw, "containerEnv")
    for k, v in container_env.items():
        if not isinstance(v, str):
            raise ValidationError(f"containerEnv.{k} must be a string")

    depends_on = _mapping(raw, "dependsOn")
    for k, v in depends_on.items():
        if not isinstance(v, dict):
            raise ValidationError(f"dependsOn.{k} must be a mapping")

    mounts = raw.get("mounts") or []
    if not isinstance(mounts, list):
        raise ValidationError("Manifest key 'mounts' must be a list")

    return FeatureManifest(
        id=_str(raw, "id", required=True),
        version=_str(raw, "version", required=True),
        name=_str(raw, "name", required=True),
        description=_str(raw, "description"),
        documentation_url=_str(raw, "documentationURL"),
        license_url=_str(raw, "licenseURL"),
        keywords=_str_list(raw, "keywords"),
        options={name: parse_option(name, opt) for name, opt in _mapping(raw, "options").items()},
        container_env=container_env,
        privileged=_bool(raw, "privileged"),
        init=_bool(raw, "init"),
        cap_add=_str_list(raw, "capAdd"),
        security_opt=_str_list(raw, "securityOpt"),
        entrypoint=_str(raw, "entrypoint"),
        customizations=_mapping(raw, "customizations"),
        depends_on=depends_on,
        installs_after=_str_list(raw, "installsAfter"),
        legacy_ids=_str_list(raw, "legacyIds"),
        deprecated=_bool(raw, "deprecated"),
        mounts=[parse_mount(m) for m in mounts],
    )


def load_manifest(path: str) -> FeatureManifest:
    """Load a manifest from a .json, .yaml or .yml file."""

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    suffix = p.suffix.lower()
    text = p.read_text(encoding="utf-8")
    try:
        if suffix == ".json":
            data = json.loads(text)
        elif suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        else:
            raise ValidationError(f"Manifest must be JSON or YAML: {p}")
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ValidationError(f"Cannot parse manifest {p}: {e}") from e

    return parse_manifest(data)
