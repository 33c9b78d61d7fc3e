from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PluginError(Exception):
    code: str
    message: str
    data: dict[str, Any] | None = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ValidationError(PluginError):
    pass


class CommandFailed(PluginError):
    pass


class CredentialError(PluginError):
    pass


class CertificateError(PluginError):
    pass
