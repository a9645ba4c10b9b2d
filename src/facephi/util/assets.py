"""Model asset cache.

Each model the detector needs is fetched once into ``AnalysisConfig.model_dir``
and reused afterwards. Concurrent CLI runs sharing a model dir coordinate
through a ``<asset>.lock`` directory; whoever holds it downloads, the others
wait for the file to appear.
"""
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
import logging
import os
import time
import urllib.request

from rich.console import Console
from rich.progress import BarColumn, DownloadColumn, Progress, TextColumn, TransferSpeedColumn

from ..config import AnalysisConfig
from ..errors import ModelLoadFailed

console = Console(stderr=True)
logger = logging.getLogger(__name__)

CHUNK_BYTES = 1 << 16


def _cached(path: Path) -> bool:
    return path.is_file() and path.stat().st_size > 0


@contextmanager
def _asset_lock(dst: Path, *, poll_seconds: float, wait_seconds: float):
    lock = dst.with_name(dst.name + ".lock")
    deadline = time.monotonic() + wait_seconds
    while True:
        try:
            lock.mkdir()
        except FileExistsError:
            if _cached(dst):
                # Someone else finished the download while we waited.
                yield
                return
            if time.monotonic() > deadline:
                raise ModelLoadFailed(f"timed out waiting for {lock}", asset=dst.name)
            time.sleep(poll_seconds)
        else:
            break
    try:
        yield
    finally:
        try:
            lock.rmdir()
        except OSError as e:
            logger.warning("could not release asset lock %s: %s", lock, e)


def _download(url: str, dst: Path, label: str, *, timeout: float) -> None:
    part = dst.with_name(f"{dst.name}.{os.getpid()}.part")
    try:
        with urllib.request.urlopen(url, timeout=timeout) as resp, open(part, "wb") as out:
            total = int(resp.headers.get("Content-Length") or 0) or None
            columns = (TextColumn("{task.description}"), BarColumn(), DownloadColumn(), TransferSpeedColumn())
            with Progress(*columns, console=console, transient=True) as progress:
                task = progress.add_task(f"fetching {label}", total=total)
                while chunk := resp.read(CHUNK_BYTES):
                    out.write(chunk)
                    progress.advance(task, len(chunk))
        if part.stat().st_size == 0:
            raise ModelLoadFailed(f"{url} returned an empty body", asset=dst.name)
        os.replace(part, dst)
    except (OSError, ValueError) as e:
        raise ModelLoadFailed(f"fetching {url}: {e}", asset=dst.name) from e
    finally:
        part.unlink(missing_ok=True)


def ensure_model_assets(
    cfg: AnalysisConfig,
    *,
    poll_seconds: float = 0.25,
    wait_seconds: float = 120.0,
    timeout: float = 60.0,
) -> dict[str, Path]:
    """Return ``{asset name: local path}``, fetching whatever is not cached yet.

    Any failure (unreachable host, empty body, unwritable dir, a lock held
    for longer than ``wait_seconds``) raises ModelLoadFailed.
    """
    try:
        cfg.model_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ModelLoadFailed(f"model dir {cfg.model_dir} is not writable: {e}") from e

    paths: dict[str, Path] = {}
    for name, (url, dst) in cfg.model_assets().items():
        if _cached(dst):
            logger.debug("%s model cached at %s", name, dst)
        else:
            with _asset_lock(dst, poll_seconds=poll_seconds, wait_seconds=wait_seconds):
                if not _cached(dst):
                    logger.info("fetching %s model from %s", name, url)
                    _download(url, dst, name, timeout=timeout)
        paths[name] = dst
    return paths
