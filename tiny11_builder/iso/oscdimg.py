"""Bootable ISO authoring with oscdimg.exe.

This module handles:
- Locating oscdimg.exe (configured path, work dirs, Windows ADK, System32)
- Downloading it from the Microsoft symbol server when it is missing
- Pruning the ISO root to the files setup needs
- Running oscdimg with BIOS and UEFI boot sectors
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import httpx

from tiny11_builder.config import Settings
from tiny11_builder.errors import ExternalToolError, NetworkError, NotFoundError
from tiny11_builder.removal.files import remove_paths
from tiny11_builder.tools.runner import ToolRunner
from tiny11_builder.types import RemovalReport

logger = logging.getLogger(__name__)

OSCDIMG = "oscdimg.exe"

ADK_ARCHITECTURES = ("amd64", "x86", "arm64")

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024

# Entries kept in the ISO root by prune_iso_root (compared lowercased)
ISO_ROOT_KEEP = frozenset(
    {
        "boot",
        "efi",
        "sources",
        "bootmgr",
        "bootmgr.efi",
        "setup.exe",
        "autounattend.xml",
    }
)


def bios_boot_sector(iso_root: Path) -> Path:
    return iso_root / "boot" / "etfsboot.com"


def uefi_boot_sector(iso_root: Path) -> Path:
    return iso_root / "efi" / "microsoft" / "boot" / "efisys.bin"


def candidate_paths(settings: Settings) -> list[Path]:
    """Locations searched for oscdimg.exe, in priority order."""
    candidates: list[Path] = []
    if settings.oscdimg_path is not None:
        candidates.append(settings.oscdimg_path)
    candidates += [settings.work_dir / OSCDIMG, settings.temp_dir / OSCDIMG]

    program_files = Path(os.environ.get("ProgramFiles(x86)", r"C:\Program Files (x86)"))
    deployment_tools = (
        program_files
        / "Windows Kits"
        / "10"
        / "Assessment and Deployment Kit"
        / "Deployment Tools"
    )
    candidates += [deployment_tools / arch / "Oscdimg" / OSCDIMG for arch in ADK_ARCHITECTURES]

    system_root = Path(os.environ.get("SystemRoot", r"C:\Windows"))
    candidates.append(system_root / "System32" / OSCDIMG)
    return candidates


def find_oscdimg(settings: Settings) -> Path | None:
    """Return the first existing oscdimg.exe, or None."""
    for candidate in candidate_paths(settings):
        if candidate.is_file():
            logger.info("Found oscdimg at %s", candidate)
            return candidate
    return None


def download_oscdimg(
    url: str,
    dest_path: Path,
    client: httpx.Client | None = None,
    timeout: float = 300,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> Path:
    """Download oscdimg.exe.

    The body is streamed to a temporary file next to ``dest_path`` and
    moved into place only once complete.

    Args:
        url: Download URL.
        dest_path: Final location of the executable.
        client: HTTPX client; a short-lived one is created when None.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to download.

    Returns:
        ``dest_path``.

    Raises:
        NetworkError: On HTTP errors, timeouts and connection failures.
    """
    logger.info("Downloading %s to %s", url, dest_path)
    dest_path.parent.mkdir(parents=True, exist_ok=True)

    own_client = client is None
    http_client = httpx.Client(follow_redirects=True) if client is None else client
    fd, tmp_name = tempfile.mkstemp(prefix=".oscdimg-", dir=dest_path.parent)
    tmp_path = Path(tmp_name)
    try:
        total_bytes = 0
        with os.fdopen(fd, "wb") as f:
            with http_client.stream("GET", url, timeout=timeout) as response:
                response.raise_for_status()
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    total_bytes += len(chunk)
        os.replace(tmp_path, dest_path)
    except httpx.HTTPStatusError as e:
        raise NetworkError(
            f"HTTP error downloading {url}: "
            f"{e.response.status_code} {e.response.reason_phrase}",
            code="http_error",
            context={"url": url},
        ) from e
    except httpx.TimeoutException as e:
        raise NetworkError(
            f"Timeout downloading {url}", code="timeout", context={"url": url}
        ) from e
    except httpx.RequestError as e:
        raise NetworkError(
            f"Network error downloading {url}: {e}",
            code="network_error",
            context={"url": url},
        ) from e
    finally:
        tmp_path.unlink(missing_ok=True)
        if own_client:
            http_client.close()

    logger.info("Downloaded %s (%d bytes)", dest_path.name, total_bytes)
    return dest_path


def ensure_oscdimg(settings: Settings, client: httpx.Client | None = None) -> Path:
    """Locate oscdimg.exe, downloading it into the work dir if needed.

    Raises:
        NotFoundError: If it is not installed and offline mode is on.
        NetworkError: If the download fails.
    """
    found = find_oscdimg(settings)
    if found is not None:
        return found
    if settings.offline:
        raise NotFoundError(
            "oscdimg.exe not found and offline mode is enabled; "
            "install the Windows ADK Deployment Tools or set TINY11_OSCDIMG_PATH",
            context={"searched": [str(p) for p in candidate_paths(settings)]},
        )
    return download_oscdimg(
        settings.oscdimg_url,
        settings.work_dir / OSCDIMG,
        client=client,
        timeout=settings.download_timeout,
    )


def prune_iso_root(iso_root: Path, log: logging.Logger = logger) -> RemovalReport:
    """Delete everything in the ISO root that setup does not need."""
    if not iso_root.is_dir():
        raise NotFoundError(f"ISO root not found: {iso_root}", context={"path": iso_root})
    extras = sorted(
        entry for entry in iso_root.iterdir() if entry.name.lower() not in ISO_ROOT_KEEP
    )
    report = remove_paths(extras, RemovalReport(), log)
    log.info("Pruned %d entries from the ISO root", report.removed)
    return report


def create_iso(
    runner: ToolRunner,
    oscdimg: Path,
    source_dir: Path,
    output: Path,
    log: logging.Logger = logger,
) -> Path:
    """Package ``source_dir`` as a BIOS/UEFI bootable ISO.

    Raises:
        NotFoundError: If either boot sector file is missing.
        ExternalToolError: If oscdimg fails or produces no file.
    """
    etfsboot = bios_boot_sector(source_dir)
    efisys = uefi_boot_sector(source_dir)
    for boot_file in (etfsboot, efisys):
        if not boot_file.is_file():
            raise NotFoundError(f"Boot file not found: {boot_file}", context={"path": boot_file})

    output.parent.mkdir(parents=True, exist_ok=True)
    output.unlink(missing_ok=True)

    log.info("Creating %s from %s", output, source_dir)
    runner.run(
        [
            str(oscdimg),
            "-m",
            "-o",
            "-u2",
            "-udfver102",
            f"-bootdata:2#p0,e,b{etfsboot}#pEF,e,b{efisys}",
            str(source_dir),
            str(output),
        ]
    )

    if not output.is_file():
        raise ExternalToolError(
            f"oscdimg finished but {output} was not created",
            code="iso_missing",
            context={"path": output},
        )
    log.info("ISO created: %s (%d bytes)", output, output.stat().st_size)
    return output


__all__ = [
    "ISO_ROOT_KEEP",
    "OSCDIMG",
    "bios_boot_sector",
    "candidate_paths",
    "create_iso",
    "download_oscdimg",
    "ensure_oscdimg",
    "find_oscdimg",
    "prune_iso_root",
    "uefi_boot_sector",
]
