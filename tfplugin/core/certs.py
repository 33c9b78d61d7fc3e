from __future__ import annotations

import logging
import os
from pathlib import Path

from .errors import CertificateError

logger = logging.getLogger(__name__)

CA_CERT_PATH = Path("/usr/local/share/ca-certificates/ca_cert.crt")


def install_ca_cert(cacert: str, path: Path = CA_CERT_PATH) -> Path:
    """
    Write a PEM certificate into the system trust-store directory.

    The `update-ca-certificates` stage that refreshes the store is part of the
    command list (see commands.build_commands). A failed write is fatal.
    """
    try:
        path.write_text(cacert, encoding="utf-8")
        os.chmod(path, 0o644)
    except OSError as e:
        raise CertificateError(
            code="cacert.write_failed",
            message=f"Failed to write CA certificate to {path}",
            data={"path": str(path), "error": str(e)},
        ) from e
    logger.debug("Wrote CA certificate to %s", path)
    return path
