"""Discovery and removal of fibre channel disks through sysfs and /dev."""

from __future__ import annotations

import logging
import os
import subprocess
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Optional, Protocol

log = logging.getLogger(__name__)

_SYS_BLOCK = "/sys/block/"
_SCSI_HOST = "/sys/class/scsi_host/"
_DEV_BY_PATH = "/dev/disk/by-path/"
_DEV_BY_ID = "/dev/disk/by-id/"


class FibreChannelError(Exception):
    """A fibre channel disk could not be found or detached."""


class IOHandler(Protocol):
    def read_dir(self, dirname: str) -> list[str]: ...

    def lstat(self, name: str) -> os.stat_result: ...

    def eval_symlinks(self, path: str) -> str: ...

    def write_file(self, filename: str, data: bytes, perm: int) -> None: ...


@dataclass
class Connector:
    """Parameters identifying a fibre channel volume."""

    volume_name: str = ""
    target_wwns: list[str] = field(default_factory=list)
    lun: str = ""
    wwids: list[str] = field(default_factory=list)


class OSIOHandler:
    """File system access backed by the operating system."""

    def read_dir(self, dirname: str) -> list[str]:
        """Return the names of the entries of a directory, sorted."""
        return sorted(os.listdir(dirname))

    def lstat(self, name: str) -> os.stat_result:
        return os.lstat(name)

    def eval_symlinks(self, path: str) -> str:
        return os.path.realpath(path, strict=True)

    def write_file(self, filename: str, data: bytes, perm: int) -> None:
        fd = os.open(filename, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, perm)
        with os.fdopen(fd, "wb") as f:
            f.write(data)


def _find_device_for_path(path: str, io: IOHandler) -> str:
    """Return the disk name (sdX, hdX, ...) behind a /dev path or link to one."""
    device_path = io.eval_symlinks(path)
    parts = device_path.split("/")
    if len(parts) == 3 and parts[1].startswith("dev"):
        return parts[2]
    raise FibreChannelError("Illegal path for device " + device_path)


def find_multipath_device_for_device(device: str, io: IOHandler) -> str:
    """Return the device-mapper parent of a device such as /dev/sdx, or ''."""
    disk = _find_device_for_path(device, io)
    for name in io.read_dir(_SYS_BLOCK):
        if not name.startswith("dm-"):
            continue
        try:
            io.lstat(_SYS_BLOCK + name + "/slaves/" + disk)
        except OSError:
            continue
        return "/dev/" + name
    return ""


def _scsi_host_rescan(io: IOHandler) -> None:
    try:
        hosts = io.read_dir(_SCSI_HOST)
    except OSError:
        return
    for host in hosts:
        with suppress(OSError):
            io.write_file(_SCSI_HOST + host + "/scan", b"- - -", 0o666)


def _find_disk(wwn: str, lun: str, io: IOHandler) -> tuple[str, str]:
    """Find the disk and its device-mapper parent for a wwn and lun."""
    fc_path = "-fc-0x" + wwn + "-lun-" + lun
    try:
        names = io.read_dir(_DEV_BY_PATH)
    except OSError:
        return "", ""
    for name in names:
        if fc_path not in name:
            continue
        try:
            disk = io.eval_symlinks(_DEV_BY_PATH + name)
            dm = find_multipath_device_for_device(disk, io)
        except (OSError, FibreChannelError):
            continue
        return disk, dm
    return "", ""


def _find_disk_wwids(wwid: str, io: IOHandler) -> tuple[str, str]:
    """Find the disk and its device-mapper parent for a wwid."""
    fc_path = "scsi-" + wwid
    try:
        names = io.read_dir(_DEV_BY_ID)
    except OSError:
        names = []
    if fc_path in names:
        link = _DEV_BY_ID + fc_path
        try:
            disk = io.eval_symlinks(link)
        except OSError as exc:
            log.error("fc: failed to find a corresponding disk from symlink[%s], error %s", link, exc)
            return "", ""
        try:
            dm = find_multipath_device_for_device(disk, io)
        except (OSError, FibreChannelError) as exc:
            log.error("fc: failed to find a multipath disk for %s, error %s", disk, exc)
            return disk, ""
        return disk, dm
    log.error("fc: failed to find a disk [%s]", _DEV_BY_ID + fc_path)
    return "", ""


def _search_disk(connector: Connector, io: IOHandler) -> str:
    disk_ids = connector.target_wwns or connector.wwids
    disk = dm = ""
    # First look at the existing devices; if no multipath device turns up,
    # rescan the SCSI bus and look once more.
    for rescanned in (False, True):
        for disk_id in disk_ids:
            if connector.target_wwns:
                disk, dm = _find_disk(disk_id, connector.lun, io)
            else:
                disk, dm = _find_disk_wwids(disk_id, io)
            if dm:
                break
        if dm or rescanned:
            break
        _scsi_host_rescan(io)

    if not disk and not dm:
        raise FibreChannelError("no fc disk found")
    return dm or disk


def attach(connector: Connector, io: Optional[IOHandler] = None) -> str:
    """Return the device path of the volume described by connector."""
    io = io or OSIOHandler()
    log.info("Attaching fibre channel volume")
    try:
        return _search_disk(connector, io)
    except FibreChannelError:
        log.info("unable to find disk given WWNN or WWIDs")
        raise


def find_slave_devices_on_multipath(dm: str, io: IOHandler) -> list[str]:
    """Return the /dev paths of the devices underneath a multipath device."""
    parts = dm.split("/")
    if len(parts) != 3 or not parts[1].startswith("dev"):
        return []
    try:
        names = io.read_dir(f"{_SYS_BLOCK}{parts[2]}/slaves")
    except OSError:
        return []
    return ["/dev/" + name for name in names]


def _remove_from_scsi_subsystem(device_name: str, io: IOHandler) -> None:
    file_name = _SYS_BLOCK + device_name + "/device/delete"
    log.info("fc: remove device from scsi-subsystem: path: %s", file_name)
    with suppress(OSError):
        io.write_file(file_name, b"1", 0o666)


def _detach_fc_disk(device_path: str, io: IOHandler) -> None:
    if not device_path.startswith("/dev/"):
        raise FibreChannelError(f"fc detach disk: invalid device name: {device_path}")
    _remove_from_scsi_subsystem(device_path.split("/")[-1], io)


def detach(device_path: str, io: Optional[IOHandler] = None) -> None:
    """Remove the SCSI devices behind device_path from the node."""
    io = io or OSIOHandler()
    log.info("Detaching fibre channel volume")
    dst_path = io.eval_symlinks(device_path)
    if dst_path.startswith("/dev/dm-"):
        devices = find_slave_devices_on_multipath(dst_path, io)
    else:
        devices = [dst_path]
    log.info("fc: DetachDisk devicePath: %s, dstPath: %s, devices: %s", device_path, dst_path, devices)

    last_error: Optional[FibreChannelError] = None
    for device in devices:
        try:
            _detach_fc_disk(device, io)
        except FibreChannelError as exc:
            log.error("fc: detachFCDisk failed. device: %s err: %s", device, exc)
            last_error = FibreChannelError(f"fc: detachFCDisk failed. device: {device} err: {exc}")
    if last_error is not None:
        log.error("fc: last error occurred during detach disk:\n%s", last_error)
        raise last_error


def remove_multipath_device(device: str) -> None:
    """Flush a multipath device map with the multipath tool."""
    try:
        result = subprocess.run(
            ["multipath", "-f", device],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
    except OSError as exc:
        raise FibreChannelError(f"failed remove multipath device: {device} err: {exc}") from exc
    if result.returncode != 0:
        raise FibreChannelError(
            f"failed remove multipath device: {device} err: exit status {result.returncode}"
        )
    log.info("output of multipath device remove command: %s", result.stdout)