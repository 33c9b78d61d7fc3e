from __future__ import annotations

from typing import Dict, Iterator, Mapping

TF_VAR_PREFIX = "TF_VAR_"


class EnvironmentOverlay(Mapping[str, str]):
    """
    Variables layered on top of the process environment for spawned commands.

    The overlay is a value: `merged()` returns a new overlay and the process
    environment itself is never written to.
    """

    def __init__(self, values: Mapping[str, str] | None = None):
        self._values: Dict[str, str] = dict(values or {})

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"EnvironmentOverlay({sorted(self._values)!r})"

    def merged(self, other: Mapping[str, str]) -> "EnvironmentOverlay":
        values = dict(self._values)
        values.update(other)
        return EnvironmentOverlay(values)

    def apply_to(self, environ: Mapping[str, str]) -> Dict[str, str]:
        env = dict(environ)
        env.update(self._values)
        return env


def bridge_tf_vars(environ: Mapping[str, str]) -> EnvironmentOverlay:
    """
    Copy every TF_VAR_<Name> to TF_VAR_<name>.

    Only the first occurrence of the prefix is split on, so TF_VAR_AWS_REGION
    becomes TF_VAR_aws_region. Names that are already lowercase produce no entry.
    """
    added: Dict[str, str] = {}
    for name in sorted(environ):
        if not name.startswith(TF_VAR_PREFIX):
            continue
        _, _, suffix = name.partition(TF_VAR_PREFIX)
        lowered = TF_VAR_PREFIX + suffix.lower()
        if lowered == name:
            continue
        added[lowered] = environ[name]
    return EnvironmentOverlay(added)


def secrets_overlay(secrets: Mapping[str, str]) -> EnvironmentOverlay:
    # Secrets reach terraform through the environment so they never show up in argv.
    return EnvironmentOverlay({f"{TF_VAR_PREFIX}{k}": v for k, v in secrets.items()})
