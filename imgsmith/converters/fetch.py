# SPDX-License-Identifier: LGPL-3.0-or-later
# imgsmith/converters/fetch.py
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Optional, Tuple

import requests
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from ..core.exceptions import DownloadError
from ..core.utils import U

CHUNK_BYTES = 1024 * 1024


def _progress() -> Optional[Progress]:
    if not sys.stderr.isatty():
        return None
    return Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        TimeRemainingColumn(),
    )


def download_file(
    logger: Any,
    url: str,
    dest: Path,
    *,
    timeout: Tuple[float, float] = (30.0, 300.0),
    chunk_bytes: int = CHUNK_BYTES,
) -> int:
    """
    Stream `url` into `dest` through a `.part` file renamed on success.
    One attempt only; any network or storage failure is a DownloadError.
    Returns the number of bytes written.
    """
    dest = Path(dest)
    try:
        U.ensure_dir(dest.parent)
    except OSError as e:
        raise DownloadError(
            msg=f"Cannot create download directory {dest.parent}: {e}", cause=e, context={"url": url, "dest": str(dest)}
        ) from e
    tmp = dest.with_name(dest.name + ".part")

    try:
        resp = requests.get(url, stream=True, timeout=timeout, allow_redirects=True)
    except requests.RequestException as e:
        raise DownloadError(msg=f"Error while downloading {url}: {e}", cause=e, context={"url": url}) from e

    with resp:
        if resp.status_code != requests.codes.ok:
            raise DownloadError(
                msg=f"Bad status downloading {url}: {resp.status_code} {resp.reason}",
                context={"url": url, "status": resp.status_code},
            )

        total: Optional[int] = None
        length = resp.headers.get("Content-Length")
        if length and length.isdigit():
            total = int(length)

        written = 0
        progress = _progress()
        try:
            with open(tmp, "wb") as f:
                if progress is None:
                    for chunk in resp.iter_content(chunk_size=chunk_bytes):
                        if chunk:
                            f.write(chunk)
                            written += len(chunk)
                else:
                    with progress:
                        task = progress.add_task(f"Downloading {dest.name}", total=total)
                        for chunk in resp.iter_content(chunk_size=chunk_bytes):
                            if chunk:
                                f.write(chunk)
                                written += len(chunk)
                                progress.update(task, completed=written)
        except (requests.RequestException, OSError) as e:
            tmp.unlink(missing_ok=True)
            raise DownloadError(
                msg=f"Error while writing {dest}: {e}", cause=e, context={"url": url, "dest": str(dest)}
            ) from e

    if total is not None and written != total:
        tmp.unlink(missing_ok=True)
        raise DownloadError(
            msg=f"Size mismatch downloading {url}: expected {total}, got {written}",
            context={"url": url, "expected": total, "written": written},
        )

    try:
        tmp.replace(dest)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise DownloadError(
            msg=f"Cannot move download into place {dest}: {e}", cause=e, context={"url": url, "dest": str(dest)}
        ) from e
    return written


def ensure_base_image(
    logger: Any,
    url: str,
    dest: Path,
    *,
    timeout: Tuple[float, float] = (30.0, 300.0),
) -> bool:
    """
    Download the base image unless `dest` already exists.
    Returns True when a download happened.
    """
    dest = Path(dest)
    if dest.exists():
        logger.info(f"File found, skip download: {dest}")
        return False

    logger.info(f"Downloading file from {url}")
    written = download_file(logger, url, dest, timeout=timeout)
    logger.info(f"Download succeeded: {dest} ({U.human_bytes(written)})")
    return True
