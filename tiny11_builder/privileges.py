"""Administrator rights check run before a build starts.

DISM, reg and takeown all need an elevated token; without one they fail
partway through the pipeline, so builds are refused up front instead.
"""

from __future__ import annotations

import ctypes
import os
from collections.abc import Callable

from tiny11_builder.errors import PermissionDeniedError

ElevationCheck = Callable[[], bool]


def is_elevated() -> bool:
    """Return True when the current process runs with administrator rights.

    On Windows this asks the shell whether the token is a member of the
    Administrators group; elsewhere it checks for the root user.
    """
    if os.name == "nt":
        try:
            return ctypes.windll.shell32.IsUserAnAdmin() != 0
        except (AttributeError, OSError):
            return False
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


def require_elevation(check: ElevationCheck = is_elevated) -> None:
    """Raise unless the process has administrator rights.

    Args:
        check: Callable reporting whether the process is elevated.

    Raises:
        PermissionDeniedError: If the process is not elevated.
    """
    if check():
        return
    raise PermissionDeniedError(
        "Administrator rights are required: run the builder from an elevated prompt",
        code="not_elevated",
    )


__all__ = ["ElevationCheck", "is_elevated", "require_elevation"]
