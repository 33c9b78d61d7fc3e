from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

import jsonschema
import yaml

from .errors import ValidationError


_SCALAR = {"type": ["string", "number", "boolean"]}

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "plan": {"type": "boolean"},
        "destroy": {"type": "boolean"},
        "vars": {"type": "object", "additionalProperties": _SCALAR},
        "secrets": {"type": "object", "additionalProperties": _SCALAR},
        "init_options": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "backend-config": {"type": "array", "items": {"type": "string"}},
                "lock": {"type": ["boolean", "null"]},
                "lock-timeout": {"type": "string"},
            },
        },
        "cacert": {"type": "string"},
        "sensitive": {"type": "boolean"},
        "role_arn": {"type": "string"},
        "root_dir": {"type": "string"},
        "parallelism": {"type": "integer"},
        "targets": {"type": "array", "items": {"type": "string"}},
        "var_files": {"type": "array", "items": {"type": "string"}},
    },
}

_TRUE_STRINGS = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class InitOptions:
    """
    Options shared by `terraform init` and the plan/apply/destroy stages.

    `lock` is tri-state: None leaves terraform's own default in charge.
    """

    backend_config: Tuple[str, ...] = ()
    lock: Optional[bool] = None
    lock_timeout: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "backend_config", tuple(self.backend_config))


@dataclass(frozen=True)
class Config:
    """
    User-supplied parameters for one plugin run. Never mutated after construction.
    """

    plan: bool = False
    destroy: bool = False
    vars: Mapping[str, str] = field(default_factory=dict)
    secrets: Mapping[str, str] = field(default_factory=dict)
    init_options: InitOptions = field(default_factory=InitOptions)
    cacert: str = ""
    sensitive: bool = False
    role_arn: str = ""
    root_dir: str = ""
    parallelism: int = 0
    targets: Tuple[str, ...] = ()
    var_files: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # frozen only guards attribute assignment; freeze the containers too
        object.__setattr__(self, "vars", MappingProxyType(dict(self.vars)))
        object.__setattr__(self, "secrets", MappingProxyType(dict(self.secrets)))
        object.__setattr__(self, "targets", tuple(self.targets))
        object.__setattr__(self, "var_files", tuple(self.var_files))

    @classmethod
    def from_dict(cls, raw: Any) -> "Config":
        if raw is None:
            raw = {}
        errors = validate_config(raw)
        if errors:
            raise ValidationError(code="config.invalid", message="Plugin configuration is invalid", data={"errors": errors})

        init_raw = raw.get("init_options") or {}
        init_options = InitOptions(
            backend_config=tuple(init_raw.get("backend-config") or ()),
            lock=init_raw.get("lock"),
            lock_timeout=init_raw.get("lock-timeout") or "",
        )
        return cls(
            plan=bool(raw.get("plan", False)),
            destroy=bool(raw.get("destroy", False)),
            vars=_string_map(raw.get("vars")),
            secrets=_string_map(raw.get("secrets")),
            init_options=init_options,
            cacert=raw.get("cacert") or "",
            sensitive=bool(raw.get("sensitive", False)),
            role_arn=raw.get("role_arn") or "",
            root_dir=raw.get("root_dir") or "",
            parallelism=int(raw.get("parallelism") or 0),
            targets=tuple(raw.get("targets") or ()),
            var_files=tuple(raw.get("var_files") or ()),
        )


def validate_config(raw: Any) -> List[str]:
    """
    Validates a raw config mapping and returns a list of error strings (empty means valid).
    """
    validator = jsonschema.Draft202012Validator(CONFIG_SCHEMA)
    out: List[str] = []
    for e in sorted(validator.iter_errors(raw), key=str):
        where = "/".join(str(p) for p in e.absolute_path)
        out.append(f"{where}: {e.message}" if where else e.message)
    return out


def _scalar_str(v: Any) -> str:
    # YAML turns `lock: true` style values into bools; terraform wants lowercase.
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


def _string_map(raw: Any) -> Dict[str, str]:
    if not raw:
        return {}
    return {str(k): _scalar_str(v) for k, v in raw.items()}


def load_config_file(path: Path) -> Config:
    p = path.expanduser()
    if not p.exists() or not p.is_file():
        raise ValidationError(code="config.not_found", message=f"Config file not found: {p}", data={"path": str(p)})
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValidationError(code="config.invalid", message=f"Config file is not valid YAML: {p}", data={"error": str(e)}) from e
    return Config.from_dict(raw)


def _env_bool(v: str) -> bool:
    return v.strip().lower() in _TRUE_STRINGS


def _env_list(v: str) -> List[str]:
    return [s.strip() for s in v.split(",") if s.strip()]


def _env_json(name: str, v: str) -> Any:
    try:
        return json.loads(v)
    except ValueError as e:
        raise ValidationError(
            code="config.invalid",
            message=f"{name} must be a JSON object",
            data={"variable": name},
        ) from e


def config_from_env(environ: Mapping[str, str]) -> Config:
    """
    Build a Config from Drone-style PLUGIN_* settings.

    - booleans: 1/true/yes/on (case-insensitive)
    - PLUGIN_VARS, PLUGIN_SECRETS, PLUGIN_INIT_OPTIONS: JSON objects
    - PLUGIN_TARGETS, PLUGIN_VAR_FILES: comma-separated
    """
    raw: Dict[str, Any] = {}

    for key, name in (("plan", "PLUGIN_PLAN"), ("destroy", "PLUGIN_DESTROY"), ("sensitive", "PLUGIN_SENSITIVE")):
        v = environ.get(name)
        if v:
            raw[key] = _env_bool(v)

    for key, name in (("vars", "PLUGIN_VARS"), ("secrets", "PLUGIN_SECRETS"), ("init_options", "PLUGIN_INIT_OPTIONS")):
        v = environ.get(name)
        if v and v.strip():
            raw[key] = _env_json(name, v)

    for key, name in (("cacert", "PLUGIN_CA_CERT"), ("role_arn", "PLUGIN_ROLE_ARN_TO_ASSUME"), ("root_dir", "PLUGIN_ROOT_DIR")):
        v = environ.get(name)
        if v:
            raw[key] = v

    for key, name in (("targets", "PLUGIN_TARGETS"), ("var_files", "PLUGIN_VAR_FILES")):
        v = environ.get(name)
        if v:
            raw[key] = _env_list(v)

    parallelism = environ.get("PLUGIN_PARALLELISM")
    if parallelism and parallelism.strip():
        try:
            raw["parallelism"] = int(parallelism.strip())
        except ValueError as e:
            raise ValidationError(
                code="config.invalid",
                message="PLUGIN_PARALLELISM must be an integer",
                data={"value": parallelism},
            ) from e

    return Config.from_dict(raw)
