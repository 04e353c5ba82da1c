"""Size conversions, endpoint parsing and per-volume operation locks."""

from __future__ import annotations

import os
import posixpath
import threading
from collections.abc import Iterable
from urllib.parse import urlsplit

from .csi import VolumeCapability

GIB = 1024 * 1024 * 1024

VOLUME_OPERATION_ALREADY_EXISTS_FMT = "An operation with the given volume key %s already exists"


def _trunc_div(a: int, b: int) -> int:
    """Integer division rounding toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def _round_up_size(volume_size_bytes: int, allocation_unit_bytes: int) -> int:
    return _trunc_div(volume_size_bytes + allocation_unit_bytes - 1, allocation_unit_bytes)


def round_up_bytes(volume_size_bytes: int) -> int:
    """Round a size in bytes up to a whole number of GiB, in bytes."""
    return _round_up_size(volume_size_bytes, GIB) * GIB


def round_up_gib(volume_size_bytes: int) -> int:
    """Round a size in bytes up to a whole number of GiB, in GiB."""
    return _round_up_size(volume_size_bytes, GIB)


def bytes_to_gib(volume_size_bytes: int) -> int:
    return _trunc_div(volume_size_bytes, GIB)


def gib_to_bytes(volume_size_gib: int) -> int:
    return volume_size_gib * GIB


def _join(*parts: str) -> str:
    """Join path elements, ignoring empty ones, and clean the result."""
    kept = [p for p in parts if p]
    if not kept:
        return ""
    cleaned = posixpath.normpath("/".join(kept))
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def parse_endpoint(endpoint: str) -> tuple[str, str]:
    """Split an endpoint URL into (scheme, address).

    A stale unix socket at the address is removed.
    """
    try:
        url = urlsplit(endpoint)
    except ValueError as exc:
        raise ValueError(f"could not parse endpoint: {exc}") from exc

    addr = _join(url.netloc, url.path)
    scheme = url.scheme.lower()
    if scheme == "tcp":
        pass
    elif scheme == "unix":
        addr = _join("/", addr)
        try:
            os.remove(addr)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise OSError(f"could not remove unix domain socket {addr!r}: {exc}") from exc
    else:
        raise ValueError(f"unsupported protocol: {scheme}")
    return scheme, addr


def get_access_modes(caps: Iterable[VolumeCapability]) -> list[str]:
    """Return the names of the access modes of the given capabilities."""
    return [cap.access_mode.name for cap in caps]


class VolumeLocks:
    """A set of keys with an ongoing operation, safe to use from several threads."""

    def __init__(self) -> None:
        self._locks: set[str] = set()
        self._mutex = threading.Lock()

    def try_acquire(self, volume_id: str) -> bool:
        """Mark volume_id as busy; return False if it already was."""
        with self._mutex:
            if volume_id in self._locks:
                return False
            self._locks.add(volume_id)
            return True

    def release(self, volume_id: str) -> None:
        with self._mutex:
            self._locks.discard(volume_id)