"""Mount, format and device lookup operations on the node."""

from __future__ import annotations

import logging
import os
import re
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

from .fibrechannel import Connector, IOHandler, OSIOHandler, attach

log = logging.getLogger(__name__)

_RESCAN_SCRIPT = "/usr/bin/rescan-scsi-bus.sh"
_BLKID_NO_FILESYSTEM = 2
_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


class MountError(Exception):
    """A mount, format or resize operation failed."""


@dataclass(frozen=True)
class MountPoint:
    """One entry of the mount table."""

    device: str
    path: str
    fstype: str = ""
    opts: tuple[str, ...] = ()


def _unescape(text: str) -> str:
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), text)


def _run(args: Sequence[str]) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(
            list(args), stdout=subprocess.PIPE, stderr=subprocess.PIPE, check=False
        )
    except OSError as exc:
        raise MountError(f"{args[0]}: {exc}") from exc


def _output_text(result: subprocess.CompletedProcess) -> str:
    parts = [result.stdout or b"", result.stderr or b""]
    return b"".join(p if isinstance(p, bytes) else p.encode() for p in parts).decode(
        errors="replace"
    )


def _mount_args(source: str, target: str, fstype: str, options: Sequence[str]) -> list[str]:
    args = ["mount"]
    if fstype:
        args += ["-t", fstype]
    if options:
        args += ["-o", ",".join(options)]
    return args + [source, target]


class NodeMounter:
    """Mount operations backed by the system mount tools and /proc/mounts."""

    def __init__(self, mounts_file: str = "/proc/mounts", io: Optional[IOHandler] = None) -> None:
        self.mounts_file = mounts_file
        self.io = io if io is not None else OSIOHandler()

    def list_mounts(self) -> list[MountPoint]:
        """Return the entries of the mount table."""
        mounts = []
        with open(self.mounts_file, encoding="utf-8") as f:
            for line in f:
                fields = line.split()
                if len(fields) < 2:
                    continue
                mounts.append(
                    MountPoint(
                        device=_unescape(fields[0]),
                        path=_unescape(fields[1]),
                        fstype=fields[2] if len(fields) > 2 else "",
                        opts=tuple(fields[3].split(",")) if len(fields) > 3 else (),
                    )
                )
        return mounts

    def rescan_scsi_bus(self) -> None:
        result = _run([_RESCAN_SCRIPT])
        if result.returncode != 0:
            raise MountError(
                f"failed to rescan-scsi-bus.sh: exit status {result.returncode}"
            )
        log.debug("output of rescan-scsi-bus.sh: %s", _output_text(result))

    def get_device_path(self, wwn: str) -> str:
        """Return the device path of the disk with the given world wide name."""
        # The cloud reports the wwn without the leading NAA type digit.
        return attach(Connector(wwids=["3" + wwn]), self.io)

    def get_device_name(self, mount_path: str) -> tuple[str, int]:
        """Return the device mounted at mount_path and how many times it is mounted."""
        mounts = self.list_mounts()
        try:
            target = os.path.realpath(mount_path, strict=True)
        except OSError:
            target = mount_path
        device = next(
            (mp.device for mp in mounts if os.path.normpath(mp.path) == target), ""
        )
        if not device:
            return "", 0
        return device, sum(1 for mp in mounts if mp.device == device)

    def make_file(self, pathname: str) -> None:
        fd = os.open(pathname, os.O_CREAT | os.O_RDONLY, 0o644)
        os.close(fd)

    def make_dir(self, pathname: str) -> None:
        os.makedirs(pathname, mode=0o755, exist_ok=True)

    def exists_path(self, filename: str) -> bool:
        try:
            os.stat(filename)
        except FileNotFoundError:
            return False
        return True

    def mount(self, source: str, target: str, fstype: str, options: Sequence[str]) -> None:
        options = list(options or [])
        if "bind" in options:
            rest = [o for o in options if o != "bind"]
            if rest:
                self._mount_once(source, target, fstype, ["bind"])
                self._mount_once(source, target, fstype, ["bind", "remount", *rest])
                return
        self._mount_once(source, target, fstype, options)

    def _mount_once(self, source: str, target: str, fstype: str, options: Sequence[str]) -> None:
        args = _mount_args(source, target, fstype, options)
        result = _run(args)
        if result.returncode != 0:
            raise MountError(
                f"mount failed: exit status {result.returncode}\n"
                f"Mounting command: mount\nMounting arguments: {' '.join(args[1:])}\n"
                f"Output: {_output_text(result)}"
            )

    def unmount(self, target: str) -> None:
        result = _run(["umount", target])
        if result.returncode != 0:
            raise MountError(
                f"unmount failed: exit status {result.returncode}\n"
                f"Unmounting arguments: {target}\nOutput: {_output_text(result)}"
            )

    def is_likely_not_mount_point(self, path: str) -> bool:
        """True unless path sits on a different device than its parent."""
        st = os.stat(path)
        parent = os.stat(os.path.join(os.path.dirname(os.path.normpath(path)) or ".", ""))
        return st.st_dev == parent.st_dev

    def _disk_format(self, device: str) -> str:
        result = _run(["blkid", "-p", "-s", "TYPE", "-s", "PTTYPE", "-o", "export", device])
        if result.returncode == _BLKID_NO_FILESYSTEM:
            return ""
        if result.returncode != 0:
            raise MountError(
                f"could not determine format of {device}: exit status {result.returncode}"
            )
        values = {}
        for line in (result.stdout or b"").decode(errors="replace").splitlines():
            key, sep, value = line.partition("=")
            if sep:
                values[key.strip()] = value.strip()
        fs = values.get("TYPE", "")
        if not fs and values.get("PTTYPE"):
            return "unknown data, probably partitions"
        return fs

    def format_and_mount(
        self, source: str, target: str, fstype: str, options: Sequence[str]
    ) -> None:
        """Create a file system on source if it has none, then mount it at target."""
        fstype = fstype or "ext4"
        options = [*(options or []), "defaults"]
        existing = self._disk_format(source)
        if not existing:
            args = ["-F", "-m0", source] if fstype in ("ext3", "ext4") else [source]
            log.info("Disk %s appears to be unformatted, formatting as %s", source, fstype)
            result = _run([f"mkfs.{fstype}", *args])
            if result.returncode != 0:
                raise MountError(
                    f"format of disk {source} failed: type:({fstype}) target:({target}) "
                    f"options:({','.join(options)}) errcode:(exit status {result.returncode}) "
                    f"output:({_output_text(result)})"
                )
        elif existing != fstype:
            log.warning(
                "Disk %s has format %s but %s was requested", source, existing, fstype
            )
        self.mount(source, target, fstype, options)

    def command_output(self, *args: str) -> bytes:
        """Run a command and return its standard output."""
        if not args:
            raise MountError("no command given")
        result = _run(args)
        if result.returncode != 0:
            raise MountError(f"{args[0]}: exit status {result.returncode}")
        out = result.stdout or b""
        return out if isinstance(out, bytes) else out.encode()

    def resize(self, device_path: str, volume_path: str) -> bool:
        """Grow the file system on device_path, mounted at volume_path."""
        fmt = self._disk_format(device_path)
        if fmt in ("ext3", "ext4"):
            args = ["resize2fs", device_path]
        elif fmt == "xfs":
            args = ["xfs_growfs", "-d", volume_path]
        else:
            raise MountError(
                f"resize of format {fmt} is not supported for device {device_path} "
                f"mounted at {volume_path}"
            )
        result = _run(args)
        if result.returncode != 0:
            raise MountError(
                f"resize of device {device_path} failed: exit status {result.returncode}. "
                f"{args[0]} output: {_output_text(result)}"
            )
        return True