# powervs_csi

Request handling and host helpers for a Container Storage Interface (CSI)
driver for block volumes on Power Systems Virtual Server, as a plain Python
library using only the standard library (Python 3.10 or later).

## Modules

- `powervs_csi.csi` – request and response dataclasses (`CreateVolumeRequest`,
  `ControllerPublishVolumeRequest`, `NodeStageVolumeRequest`, ...), the
  `VolumeCapability` with its `MountVolume` or `BlockVolume` access type, the
  `AccessMode`, `ControllerCapability`, `NodeCapability` and `PluginCapability`
  enums, and `CsiError`, which carries a `StatusCode` such as
  `INVALID_ARGUMENT`, `NOT_FOUND`, `ABORTED` or `INTERNAL`.
- `powervs_csi.util` – size conversions, endpoint parsing and `VolumeLocks`.
- `powervs_csi.validation` – the operating `Mode`, driver `Options` and their
  validation.
- `powervs_csi.controller` – `ControllerService`: create, delete, attach,
  detach, validate and expand volumes through a cloud client you supply.
- `powervs_csi.fibrechannel` – find Fibre Channel disks and their multipath
  devices under `/dev` and `/sys`, and remove them from the SCSI subsystem.
- `powervs_csi.mount` – `NodeMounter`: mount, unmount, format, resize and
  device lookup on the host.
- `powervs_csi.version` – build and runtime version information.

## Sizes and endpoints

```python
from powervs_csi.util import (
    bytes_to_gib,
    gib_to_bytes,
    parse_endpoint,
    round_up_bytes,
    round_up_gib,
)

round_up_bytes(1024)           # 1073741824, one GiB
round_up_gib(1)                # 1
bytes_to_gib(5 * 1024 ** 3)    # 5
gib_to_bytes(3)                # 3221225472

parse_endpoint("tcp:///127.0.0.1")      # ("tcp", "/127.0.0.1")
parse_endpoint("unix://csi/csi.sock")   # ("unix", "/csi/csi.sock")
```

`parse_endpoint` accepts `unix` and `tcp` endpoints; for a `unix` endpoint it
removes a stale socket file at the address. Any other scheme raises
`ValueError("unsupported protocol: <scheme>")`.

## Per-volume locking

```python
from powervs_csi.util import VolumeLocks

locks = VolumeLocks()
locks.try_acquire("vol-1")     # True
locks.try_acquire("vol-1")     # False, an operation is already running
locks.release("vol-1")
locks.try_acquire("vol-1")     # True again
```

`ControllerService` holds such a lock on the volume name or ID for the length
of each mutating request; a second request for the same key fails with a
`CsiError` whose code is `ABORTED`.

## Driver options

```python
from powervs_csi.validation import Mode, Options, validate_driver_options, with_mode

options = Options()
with_mode(Mode.CONTROLLER)(options)
validate_driver_options(options)   # raises ValueError for an unknown mode
```

`with_endpoint`, `with_debug` and `with_volume_attach_limit` set the other
fields. The default endpoint is `unix://tmp/csi.sock` and the default mode is
`all`.

## Controller service

`ControllerService(cloud, driver_options=None, volume_locks=None,
default_volume_size=GIB)` takes any object with the methods of the `Cloud`
protocol in `powervs_csi.controller` (`get_disk_by_name`, `get_disk_by_id`,
`create_disk`, `delete_disk`, `wait_for_volume_state`,
`get_pvm_instance_by_id`, `is_attached`, `attach_disk`, `detach_disk`,
`resize_disk`). The client reports a missing resource by raising
`CloudNotFoundError` and a duplicate attachment by raising
`CloudAlreadyExistsError`; disks are returned as `Disk` dataclasses.

```python
from powervs_csi.controller import ControllerService
from powervs_csi.csi import (
    AccessMode, CapacityRange, CreateVolumeRequest, MountVolume, VolumeCapability,
)

service = ControllerService(my_cloud)
response = service.create_volume(CreateVolumeRequest(
    name="data",
    capacity_range=CapacityRange(required_bytes=5 * 1024 ** 3),
    volume_capabilities=[VolumeCapability(MountVolume(), AccessMode.SINGLE_NODE_WRITER)],
    parameters={"type": "tier3"},
))
response.volume.capacity_bytes   # sizes are rounded up to whole GiB
```

Only the `SINGLE_NODE_WRITER` access mode is accepted, and `type` is the only
volume parameter. `get_capacity`, `list_volumes`, `controller_get_volume` and
the snapshot calls raise `CsiError` with `UNIMPLEMENTED`.

## Host helpers

`NodeMounter` reads the mount table from `/proc/mounts` and calls the host
tools `mount`, `umount`, `blkid`, `mkfs.<type>`, `resize2fs`, `xfs_growfs` and
`/usr/bin/rescan-scsi-bus.sh`; `fibrechannel.remove_multipath_device` calls
`multipath -f`. These need a Linux host and the privileges the tools need.
Failures raise `MountError` or `FibreChannelError`.

## Version information

```python
from powervs_csi.version import get_version, get_version_json

print(get_version_json())   # driverVersion, gitCommit, buildDate,
                            # pythonVersion, compiler, platform
```

## What this package does not do

- It has no node service that handles stage, publish, unstage and expand
  requests; `NodeMounter` and `powervs_csi.fibrechannel` provide the host
  operations such a service would use.
- It has no identity service, no gRPC server and no command to run; the
  request types in `powervs_csi.csi` are plain dataclasses for a front end
  you provide.
- It has no client for the Power Systems Virtual Server API; the controller
  works with the cloud client you pass in.

## Running the tests

```
pip install -e .[test]
pytest
```

The tests use in-memory fakes for the cloud client and the file system.