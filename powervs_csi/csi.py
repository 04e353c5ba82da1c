"""Container Storage Interface message types, status codes and shared keys."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional, Union

# Key in a publish context that carries the volume's world wide name.
WWN_KEY = "wwn"

# Key in the volume parameters that selects the volume type.
VOLUME_TYPE_KEY = "type"

# Default endpoint the driver listens on.
DEFAULT_CSI_ENDPOINT = "unix://tmp/csi.sock"


class StatusCode(enum.IntEnum):
    """RPC status codes used to report failures."""

    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16


class CsiError(Exception):
    """A failed CSI call, carrying a status code and a message."""

    def __init__(self, code: StatusCode, message: str = "") -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"CsiError(code={self.code.name}, message={self.message!r})"


class AccessMode(enum.IntEnum):
    """Volume access modes."""

    UNKNOWN = 0
    SINGLE_NODE_WRITER = 1
    SINGLE_NODE_READER_ONLY = 2
    MULTI_NODE_READER_ONLY = 3
    MULTI_NODE_SINGLE_WRITER = 4
    MULTI_NODE_MULTI_WRITER = 5
    SINGLE_NODE_SINGLE_WRITER = 6
    SINGLE_NODE_MULTI_WRITER = 7


@dataclass
class MountVolume:
    """Access through a mounted file system."""

    fs_type: str = ""
    mount_flags: list[str] = field(default_factory=list)


@dataclass
class BlockVolume:
    """Access as a raw block device."""


@dataclass
class VolumeCapability:
    """How a volume is to be accessed."""

    access_type: Optional[Union[MountVolume, BlockVolume]] = None
    access_mode: AccessMode = AccessMode.UNKNOWN

    @property
    def mount(self) -> Optional[MountVolume]:
        return self.access_type if isinstance(self.access_type, MountVolume) else None

    @property
    def block(self) -> Optional[BlockVolume]:
        return self.access_type if isinstance(self.access_type, BlockVolume) else None


@dataclass
class CapacityRange:
    required_bytes: int = 0
    limit_bytes: int = 0


@dataclass
class Volume:
    volume_id: str = ""
    capacity_bytes: int = 0
    volume_context: dict[str, str] = field(default_factory=dict)
    content_source: Optional[object] = None


@dataclass
class Topology:
    segments: dict[str, str] = field(default_factory=dict)


@dataclass
class CreateVolumeRequest:
    name: str = ""
    capacity_range: Optional[CapacityRange] = None
    volume_capabilities: list[VolumeCapability] = field(default_factory=list)
    parameters: dict[str, str] = field(default_factory=dict)


@dataclass
class CreateVolumeResponse:
    volume: Volume


@dataclass
class DeleteVolumeRequest:
    volume_id: str = ""


@dataclass
class ControllerPublishVolumeRequest:
    volume_id: str = ""
    node_id: str = ""
    volume_capability: Optional[VolumeCapability] = None
    readonly: bool = False
    volume_context: dict[str, str] = field(default_factory=dict)


@dataclass
class ControllerPublishVolumeResponse:
    publish_context: dict[str, str] = field(default_factory=dict)


@dataclass
class ControllerUnpublishVolumeRequest:
    volume_id: str = ""
    node_id: str = ""


@dataclass
class ValidateVolumeCapabilitiesRequest:
    volume_id: str = ""
    volume_capabilities: list[VolumeCapability] = field(default_factory=list)


@dataclass
class ValidateVolumeCapabilitiesResponse:
    confirmed: Optional[list[VolumeCapability]] = None


@dataclass
class ControllerExpandVolumeRequest:
    volume_id: str = ""
    capacity_range: Optional[CapacityRange] = None


@dataclass
class ControllerExpandVolumeResponse:
    capacity_bytes: int = 0
    node_expansion_required: bool = False


@dataclass
class NodeStageVolumeRequest:
    volume_id: str = ""
    publish_context: dict[str, str] = field(default_factory=dict)
    staging_target_path: str = ""
    volume_capability: Optional[VolumeCapability] = None


@dataclass
class NodeUnstageVolumeRequest:
    volume_id: str = ""
    staging_target_path: str = ""


@dataclass
class NodePublishVolumeRequest:
    volume_id: str = ""
    publish_context: dict[str, str] = field(default_factory=dict)
    staging_target_path: str = ""
    target_path: str = ""
    volume_capability: Optional[VolumeCapability] = None
    readonly: bool = False


@dataclass
class NodeUnpublishVolumeRequest:
    volume_id: str = ""
    target_path: str = ""


@dataclass
class NodeExpandVolumeRequest:
    volume_id: str = ""
    volume_path: str = ""


@dataclass
class NodeGetInfoResponse:
    node_id: str = ""
    max_volumes_per_node: int = 0
    accessible_topology: Optional[Topology] = None


class ControllerCapability(enum.IntEnum):
    """Controller service RPC capabilities."""

    UNKNOWN = 0
    CREATE_DELETE_VOLUME = 1
    PUBLISH_UNPUBLISH_VOLUME = 2
    LIST_VOLUMES = 3
    GET_CAPACITY = 4
    CREATE_DELETE_SNAPSHOT = 5
    LIST_SNAPSHOTS = 6
    CLONE_VOLUME = 7
    PUBLISH_READONLY = 8
    EXPAND_VOLUME = 9
    LIST_VOLUMES_PUBLISHED_NODES = 10
    VOLUME_CONDITION = 11
    GET_VOLUME = 12
    SINGLE_NODE_MULTI_WRITER = 13


class NodeCapability(enum.IntEnum):
    """Node service RPC capabilities."""

    UNKNOWN = 0
    STAGE_UNSTAGE_VOLUME = 1
    GET_VOLUME_STATS = 2
    EXPAND_VOLUME = 3
    VOLUME_CONDITION = 4
    SINGLE_NODE_MULTI_WRITER = 5


class PluginCapability(enum.IntEnum):
    """Plugin service capabilities."""

    UNKNOWN = 0
    CONTROLLER_SERVICE = 1
    VOLUME_ACCESSIBILITY_CONSTRAINTS = 2