import os
import subprocess
from unittest import mock

import pytest

from powervs_csi.fibrechannel import FibreChannelError
from powervs_csi.mount import MountError, NodeMounter


def _done(code=0, stdout=b""):
    return subprocess.CompletedProcess([], code, stdout=stdout, stderr=b"")


@pytest.fixture
def mounter(tmp_path):
    mounts = tmp_path / "mounts"
    mounts.write_text("")
    return NodeMounter(mounts_file=str(mounts))


def test_make_dir(tmp_path, mounter):
    target = str(tmp_path / "targetdir")
    mounter.make_dir(target)
    mounter.make_dir(target)
    assert mounter.exists_path(target) is True
    assert os.path.isdir(target)


def test_make_file(tmp_path, mounter):
    target = str(tmp_path / "targetfile")
    mounter.make_file(target)
    mounter.make_file(target)
    assert mounter.exists_path(target) is True
    assert os.path.isfile(target)


def test_make_file_keeps_content(tmp_path, mounter):
    target = tmp_path / "kept"
    target.write_text("data")
    mounter.make_file(str(target))
    assert target.read_text() == "data"


def test_exists_path_missing(tmp_path, mounter):
    assert mounter.exists_path(str(tmp_path / "notafile")) is False


def test_get_device_name_not_mounted(tmp_path, mounter):
    assert mounter.get_device_name(str(tmp_path / "notafile")) == ("", 0)


def test_get_device_name_counts_references(tmp_path):
    target = tmp_path / "mnt"
    target.mkdir()
    real = os.path.realpath(str(target))
    mounts = tmp_path / "mounts"
    mounts.write_text(
        f"/dev/sdb {real} ext4 rw,relatime 0 0\n"
        "/dev/sdb /other ext4 rw 0 0\n"
        "/dev/sdc /third xfs rw 0 0\n"
    )
    m = NodeMounter(mounts_file=str(mounts))
    assert m.get_device_name(str(target)) == ("/dev/sdb", 2)


def test_list_mounts_unescapes_paths(tmp_path):
    mounts = tmp_path / "mounts"
    mounts.write_text("/dev/sdd /mnt/with\\040space ext4 rw,noexec 0 0\n")
    entries = NodeMounter(mounts_file=str(mounts)).list_mounts()
    assert entries[0].path == "/mnt/with space"
    assert entries[0].opts == ("rw", "noexec")


def test_is_likely_not_mount_point_plain_dir(tmp_path, mounter):
    sub = tmp_path / "plain"
    sub.mkdir()
    assert mounter.is_likely_not_mount_point(str(sub)) is True


def test_is_likely_not_mount_point_missing(tmp_path, mounter):
    with pytest.raises(FileNotFoundError):
        mounter.is_likely_not_mount_point(str(tmp_path / "missing"))


class _FakeIO:
    def __init__(self, dirs, links, present):
        self.dirs = dirs
        self.links = links
        self.present = present

    def read_dir(self, dirname):
        if dirname not in self.dirs:
            raise FileNotFoundError(dirname)
        return self.dirs[dirname]

    def lstat(self, name):
        if name not in self.present:
            raise FileNotFoundError(name)
        return os.lstat(".")

    def eval_symlinks(self, path):
        return self.links.get(path, path)

    def write_file(self, filename, data, perm):
        pass


def test_get_device_path_finds_multipath_device(tmp_path):
    io = _FakeIO(
        dirs={"/dev/disk/by-id/": ["scsi-3abc"], "/sys/block/": ["dm-0", "sdb"]},
        links={"/dev/disk/by-id/scsi-3abc": "/dev/sdb"},
        present={"/sys/block/dm-0/slaves/sdb"},
    )
    assert NodeMounter(io=io).get_device_path("abc") == "/dev/dm-0"


def test_get_device_path_missing_disk():
    io = _FakeIO(dirs={"/dev/disk/by-id/": []}, links={}, present=set())
    with pytest.raises(FibreChannelError):
        NodeMounter(io=io).get_device_path("abc")


def test_mount_arguments(mounter):
    with mock.patch("subprocess.run", return_value=_done()) as run:
        result = mounter.mount("/dev/sdb", "/mnt/x", "ext4", ["noexec"])
    assert result is None
    assert run.call_count == 1
    assert run.call_args[0][0] == ["mount", "-t", "ext4", "-o", "noexec", "/dev/sdb", "/mnt/x"]


def test_bind_mount_with_options_remounts(mounter):
    with mock.patch("subprocess.run", return_value=_done()) as run:
        result = mounter.mount("/src", "/dst", "", ["bind", "ro"])
    assert result is None
    calls = [c[0][0] for c in run.call_args_list]
    assert calls == [
        ["mount", "-o", "bind", "/src", "/dst"],
        ["mount", "-o", "bind,remount,ro", "/src", "/dst"],
    ]


def test_mount_failure_raises(mounter):
    with mock.patch("subprocess.run", return_value=_done(32)):
        with pytest.raises(MountError):
            mounter.mount("/dev/sdb", "/mnt/x", "ext4", [])


def test_unmount_failure_raises(mounter):
    with mock.patch("subprocess.run", return_value=_done(1)):
        with pytest.raises(MountError):
            mounter.unmount("/mnt/x")


def test_format_and_mount_formats_blank_disk(mounter):
    with mock.patch("subprocess.run", side_effect=[_done(2), _done(), _done()]) as run:
        result = mounter.format_and_mount("/dev/sdb", "/mnt/x", "ext4", ["dirsync"])
    assert result is None
    calls = [c[0][0] for c in run.call_args_list]
    assert len(calls) == 3
    assert calls[1] == ["mkfs.ext4", "-F", "-m0", "/dev/sdb"]
    assert calls[2] == ["mount", "-t", "ext4", "-o", "dirsync,defaults", "/dev/sdb", "/mnt/x"]


def test_format_and_mount_skips_format_when_present(mounter):
    with mock.patch("subprocess.run", side_effect=[_done(0, b"TYPE=ext4\n"), _done()]) as run:
        result = mounter.format_and_mount("/dev/sdb", "/mnt/x", "ext4", [])
    assert result is None
    assert [c[0][0][0] for c in run.call_args_list] == ["blkid", "mount"]


def test_command_output_returns_stdout(mounter):
    with mock.patch("subprocess.run", return_value=_done(0, b"/dev/sdb\n")) as run:
        out = mounter.command_output("findmnt", "-o", "source")
    assert out == b"/dev/sdb\n"
    assert run.call_args[0][0] == ["findmnt", "-o", "source"]


def test_command_output_failure(mounter):
    with mock.patch("subprocess.run", return_value=_done(1)):
        with pytest.raises(MountError):
            mounter.command_output("findmnt")


def test_resize_ext4(mounter):
    with mock.patch("subprocess.run", side_effect=[_done(0, b"TYPE=ext4\n"), _done()]) as run:
        assert mounter.resize("/dev/sdb", "/mnt/x") is True
    assert run.call_args_list[1][0][0] == ["resize2fs", "/dev/sdb"]


def test_resize_xfs(mounter):
    with mock.patch("subprocess.run", side_effect=[_done(0, b"TYPE=xfs\n"), _done()]) as run:
        assert mounter.resize("/dev/sdb", "/mnt/x") is True
    assert run.call_args_list[1][0][0] == ["xfs_growfs", "-d", "/mnt/x"]


def test_resize_unsupported_format(mounter):
    with mock.patch("subprocess.run", return_value=_done(0, b"TYPE=vfat\n")):
        with pytest.raises(MountError):
            mounter.resize("/dev/sdb", "/mnt/x")


def test_rescan_scsi_bus_failure(mounter):
    with mock.patch("subprocess.run", return_value=_done(1)):
        with pytest.raises(MountError, match="rescan-scsi-bus.sh"):
            mounter.rescan_scsi_bus()