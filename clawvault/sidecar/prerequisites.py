"""Check the reverse-proxy binary is available before the sidecar hands over."""

from __future__ import annotations

import re
import shutil
import subprocess
from dataclasses import dataclass


@dataclass
class PrereqResult:
    name: str
    found: bool
    version: str = ""
    path: str = ""
    hint: str = ""

    @property
    def ok(self) -> bool:
        return self.found


def check_proxy(binary: str = "nginx") -> PrereqResult:
    """Check that the reverse proxy is on PATH and report its version."""
    path = shutil.which(binary)
    if not path:
        return PrereqResult(
            name=binary,
            found=False,
            version="",
            path="",
            hint=f"{binary} not found on PATH. Install it in the sidecar image.",
        )

    try:
        # nginx prints its version banner on stderr
        result = subprocess.run(
            [path, "-v"], capture_output=True, text=True, timeout=5
        )
        banner = (result.stderr or result.stdout).strip()
        match = re.search(r"/([\d.]+)", banner)
        version = match.group(1) if match else banner
    except (OSError, subprocess.TimeoutExpired):
        version = "unknown"

    return PrereqResult(name=binary, found=True, version=version, path=path, hint="")
