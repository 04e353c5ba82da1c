import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from powervs_csi.csi import AccessMode, VolumeCapability
from powervs_csi.util import (
    GIB,
    VolumeLocks,
    bytes_to_gib,
    get_access_modes,
    gib_to_bytes,
    parse_endpoint,
    round_up_bytes,
    round_up_gib,
)


def test_round_up_bytes():
    assert round_up_bytes(1024) == 1 * GIB


def test_round_up_gib():
    assert round_up_gib(1) == 1


def test_bytes_to_gib():
    assert bytes_to_gib(5 * GIB) == 5


def test_gib_to_bytes():
    assert gib_to_bytes(3) == 3 * GIB


def test_round_up_exact_multiple_unchanged():
    assert round_up_bytes(5 * GIB) == 5 * GIB
    assert round_up_bytes(1073741825) == 2147483648


@pytest.mark.parametrize(
    "endpoint, exp_scheme, exp_addr",
    [
        ("unix:///csi/csi.sock", "unix", "/csi/csi.sock"),
        ("unix://csi/csi.sock", "unix", "/csi/csi.sock"),
        ("unix:/csi/csi.sock", "unix", "/csi/csi.sock"),
        ("tcp:///127.0.0.1/", "tcp", "/127.0.0.1"),
        ("tcp:///127.0.0.1", "tcp", "/127.0.0.1"),
    ],
)
def test_parse_endpoint(endpoint, exp_scheme, exp_addr):
    scheme, addr = parse_endpoint(endpoint)
    assert scheme == exp_scheme
    assert addr == exp_addr


def test_parse_endpoint_invalid():
    with pytest.raises(ValueError) as info:
        parse_endpoint("http://127.0.0.1")
    assert str(info.value) == "unsupported protocol: http"


def test_parse_endpoint_removes_stale_socket(tmp_path):
    sock = tmp_path / "csi.sock"
    sock.write_text("")
    scheme, addr = parse_endpoint(f"unix://{sock}")
    assert scheme == "unix"
    assert addr == str(sock)
    assert not sock.exists()


def test_get_access_modes():
    caps = [
        VolumeCapability(access_mode=AccessMode.SINGLE_NODE_WRITER),
        VolumeCapability(access_mode=AccessMode.SINGLE_NODE_READER_ONLY),
    ]
    assert get_access_modes(caps) == ["SINGLE_NODE_WRITER", "SINGLE_NODE_READER_ONLY"]


def test_volume_locks_acquire_release():
    locks = VolumeLocks()
    assert locks.try_acquire("vol-1") is True
    assert locks.try_acquire("vol-1") is False
    assert locks.try_acquire("vol-2") is True
    locks.release("vol-1")
    assert locks.try_acquire("vol-1") is True


def test_volume_locks_release_unknown_key_is_harmless():
    locks = VolumeLocks()
    locks.release("missing")
    assert locks.try_acquire("missing") is True


def test_volume_locks_only_one_thread_wins():
    locks = VolumeLocks()
    barrier = threading.Barrier(8)

    def worker(_):
        barrier.wait()
        return locks.try_acquire("shared")

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(worker, range(8)))
    assert results.count(True) == 1
    assert len(results) == 8
    assert locks.try_acquire("shared") is False