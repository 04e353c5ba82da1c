"""Controller service: creating, deleting, attaching and resizing volumes."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from .csi import (
    VOLUME_TYPE_KEY,
    WWN_KEY,
    AccessMode,
    ControllerCapability,
    ControllerExpandVolumeRequest,
    ControllerExpandVolumeResponse,
    ControllerPublishVolumeRequest,
    ControllerPublishVolumeResponse,
    ControllerUnpublishVolumeRequest,
    CreateVolumeRequest,
    CreateVolumeResponse,
    CsiError,
    DeleteVolumeRequest,
    StatusCode,
    ValidateVolumeCapabilitiesRequest,
    ValidateVolumeCapabilitiesResponse,
    Volume,
    VolumeCapability,
)
from .util import (
    GIB,
    VOLUME_OPERATION_ALREADY_EXISTS_FMT,
    VolumeLocks,
    bytes_to_gib,
    get_access_modes,
    gib_to_bytes,
    round_up_bytes,
)
from .validation import Options

log = logging.getLogger(__name__)

VOLUME_AVAILABLE_STATE = "available"

SUPPORTED_ACCESS_MODES = (AccessMode.SINGLE_NODE_WRITER,)

CONTROLLER_CAPABILITIES = (
    ControllerCapability.CREATE_DELETE_VOLUME,
    ControllerCapability.PUBLISH_UNPUBLISH_VOLUME,
    ControllerCapability.EXPAND_VOLUME,
)


class CloudNotFoundError(Exception):
    """The requested cloud resource does not exist."""


class CloudAlreadyExistsError(Exception):
    """The cloud resource already exists."""


@dataclass
class Disk:
    """A block volume as reported by the cloud."""

    volume_id: str = ""
    capacity_gib: int = 0
    wwn: str = ""
    shareable: bool = False
    disk_type: str = ""


@dataclass
class DiskOptions:
    """Settings for a disk to be created."""

    shareable: bool = False
    capacity_bytes: int = 0
    volume_type: str = ""


class Cloud(Protocol):
    def get_disk_by_name(self, name: str) -> Optional[Disk]: ...

    def get_disk_by_id(self, volume_id: str) -> Optional[Disk]: ...

    def create_disk(self, volume_name: str, options: DiskOptions) -> Disk: ...

    def delete_disk(self, volume_id: str) -> bool: ...

    def wait_for_volume_state(self, volume_id: str, expected_state: str) -> None: ...

    def get_pvm_instance_by_id(self, instance_id: str) -> Any: ...

    def is_attached(self, volume_id: str, node_id: str) -> bool: ...

    def attach_disk(self, volume_id: str, node_id: str) -> None: ...

    def detach_disk(self, volume_id: str, node_id: str) -> None: ...

    def resize_disk(self, volume_id: str, new_size: int) -> int: ...


def _quote(value: str) -> str:
    return f'"{value}"'


def _unsupported_capabilities(caps: Sequence[VolumeCapability]) -> CsiError:
    modes = ", ".join(get_access_modes(caps))
    return CsiError(
        StatusCode.INVALID_ARGUMENT,
        "Volume capabilities " + modes + " not supported. Only AccessModes[ReadWriteOnce] supported.",
    )


def is_valid_volume_capabilities(caps: Sequence[VolumeCapability]) -> bool:
    """True if every capability asks for a supported access mode."""
    return all(cap.access_mode in SUPPORTED_ACCESS_MODES for cap in caps)


def get_vol_size_bytes(request: CreateVolumeRequest, default_volume_size: int) -> int:
    """Return the size to create, rounded up to whole GiB."""
    cap_range = request.capacity_range
    if cap_range is None:
        return default_volume_size
    size = round_up_bytes(cap_range.required_bytes)
    limit = cap_range.limit_bytes
    if 0 < limit < size:
        raise CsiError(
            StatusCode.INVALID_ARGUMENT,
            "After round-up, volume size exceeds the limit specified",
        )
    return size


def verify_volume_details(payload: DiskOptions, disk: Disk) -> None:
    """Raise unless an existing disk matches the requested options."""
    if payload.shareable != disk.shareable:
        raise CsiError(
            StatusCode.INTERNAL,
            "shareable in payload and shareable in disk details don't match",
        )
    if payload.volume_type != disk.disk_type:
        raise CsiError(
            StatusCode.INTERNAL,
            "TYPE in payload and disktype in disk details don't match",
        )
    if bytes_to_gib(payload.capacity_bytes) != disk.capacity_gib:
        raise CsiError(
            StatusCode.INTERNAL,
            "capacityBytes in payload and capacityGIB in disk details don't match",
        )


def new_create_volume_response(disk: Disk) -> CreateVolumeResponse:
    return CreateVolumeResponse(
        volume=Volume(
            volume_id=disk.volume_id,
            capacity_bytes=gib_to_bytes(disk.capacity_gib),
            volume_context={},
            content_source=None,
        )
    )


class ControllerService:
    """The CSI controller service, backed by a cloud provider."""

    def __init__(
        self,
        cloud: Cloud,
        driver_options: Optional[Options] = None,
        volume_locks: Optional[VolumeLocks] = None,
        default_volume_size: int = GIB,
    ) -> None:
        self.cloud = cloud
        self.driver_options = driver_options if driver_options is not None else Options()
        self.volume_locks = volume_locks if volume_locks is not None else VolumeLocks()
        self.default_volume_size = default_volume_size

    @contextmanager
    def _locked(self, key: str) -> Iterator[None]:
        if not self.volume_locks.try_acquire(key):
            raise CsiError(StatusCode.ABORTED, VOLUME_OPERATION_ALREADY_EXISTS_FMT % key)
        try:
            yield
        finally:
            self.volume_locks.release(key)

    def create_volume(self, request: CreateVolumeRequest) -> CreateVolumeResponse:
        log.debug("CreateVolume: called with args %s", request)
        name = request.name
        if not name:
            raise CsiError(StatusCode.INVALID_ARGUMENT, "Volume name not provided")

        with self._locked(name):
            size = get_vol_size_bytes(request, self.default_volume_size)

            caps = request.volume_capabilities
            if not caps:
                raise CsiError(StatusCode.INVALID_ARGUMENT, "Volume capabilities not provided")
            if not is_valid_volume_capabilities(caps):
                raise _unsupported_capabilities(caps)

            volume_type = ""
            for key, value in (request.parameters or {}).items():
                if key.lower() == VOLUME_TYPE_KEY:
                    volume_type = value
                else:
                    raise CsiError(
                        StatusCode.INVALID_ARGUMENT,
                        f"Invalid parameter key {key} for CreateVolume",
                    )

            options = DiskOptions(shareable=False, capacity_bytes=size, volume_type=volume_type)

            # A disk with this name only exists if an earlier request failed midway.
            try:
                existing = self.cloud.get_disk_by_name(name)
            except Exception:
                existing = None
            if existing is not None:
                verify_volume_details(options, existing)
                try:
                    self.cloud.wait_for_volume_state(existing.volume_id, VOLUME_AVAILABLE_STATE)
                except Exception as exc:
                    raise CsiError(
                        StatusCode.INTERNAL, "Disk already exists and not in expected state"
                    ) from exc
                return new_create_volume_response(existing)

            try:
                disk = self.cloud.create_disk(name, options)
            except Exception as exc:
                raise CsiError(
                    StatusCode.INTERNAL, f"Could not create volume {_quote(name)}: {exc}"
                ) from exc
            return new_create_volume_response(disk)

    def delete_volume(self, request: DeleteVolumeRequest) -> None:
        log.debug("DeleteVolume: called with args %s", request)
        volume_id = request.volume_id
        if not volume_id:
            raise CsiError(StatusCode.INVALID_ARGUMENT, "Volume ID not provided")

        with self._locked(volume_id):
            try:
                self.cloud.get_disk_by_id(volume_id)
            except CloudNotFoundError:
                log.debug("DeleteVolume: volume not found, returning with success")
                return
            except Exception as exc:
                log.debug("DeleteVolume: lookup of %s failed: %s", volume_id, exc)

            try:
                self.cloud.delete_disk(volume_id)
            except Exception as exc:
                raise CsiError(
                    StatusCode.INTERNAL,
                    f"Could not delete volume ID {_quote(volume_id)}: {exc}",
                ) from exc

    def controller_publish_volume(
        self, request: ControllerPublishVolumeRequest
    ) -> ControllerPublishVolumeResponse:
        log.debug("ControllerPublishVolume: called with args %s", request)
        volume_id = request.volume_id
        if not volume_id:
            raise CsiError(StatusCode.INVALID_ARGUMENT, "Volume ID not provided")

        with self._locked(volume_id):
            node_id = request.node_id
            if not node_id:
                raise CsiError(StatusCode.INVALID_ARGUMENT, "Node ID not provided")

            cap = request.volume_capability
            if cap is None:
                raise CsiError(StatusCode.INVALID_ARGUMENT, "Volume capability not provided")
            if not is_valid_volume_capabilities([cap]):
                raise _unsupported_capabilities([cap])

            try:
                self.cloud.get_pvm_instance_by_id(node_id)
            except Exception as exc:
                raise CsiError(
                    StatusCode.NOT_FOUND, f"Instance {_quote(node_id)} not found, err: {exc}"
                ) from exc

            try:
                disk = self.cloud.get_disk_by_id(volume_id)
            except CloudNotFoundError as exc:
                raise CsiError(StatusCode.NOT_FOUND, "Volume not found") from exc
            except Exception as exc:
                raise CsiError(
                    StatusCode.INTERNAL,
                    f"Could not get volume with ID {_quote(volume_id)}: {exc}",
                ) from exc

            publish_context = {WWN_KEY: disk.wwn}

            try:
                attached = self.cloud.is_attached(volume_id, node_id)
            except Exception:
                attached = False
            if attached:
                log.debug(
                    "ControllerPublishVolume: volume %s already attached to node %s",
                    volume_id,
                    node_id,
                )
                return ControllerPublishVolumeResponse(publish_context=publish_context)

            try:
                self.cloud.attach_disk(volume_id, node_id)
            except CloudAlreadyExistsError as exc:
                raise CsiError(StatusCode.ALREADY_EXISTS, str(exc)) from exc
            except Exception as exc:
                raise CsiError(
                    StatusCode.INTERNAL,
                    f"Could not attach volume {_quote(volume_id)} to node {_quote(node_id)}: {exc}",
                ) from exc
            log.debug("ControllerPublishVolume: volume %s attached to node %s", volume_id, node_id)
            return ControllerPublishVolumeResponse(publish_context=publish_context)

    def controller_unpublish_volume(self, request: ControllerUnpublishVolumeRequest) -> None:
        log.debug("ControllerUnpublishVolume: called with args %s", request)
        volume_id = request.volume_id
        if not volume_id:
            raise CsiError(StatusCode.INVALID_ARGUMENT, "Volume ID not provided")

        with self._locked(volume_id):
            node_id = request.node_id
            if not node_id:
                raise CsiError(StatusCode.INVALID_ARGUMENT, "Node ID not provided")

            try:
                self.cloud.get_disk_by_id(volume_id)
            except CloudNotFoundError:
                log.debug("ControllerUnpublishVolume: volume not found, returning with success")
                return
            except Exception as exc:
                log.debug("ControllerUnpublishVolume: lookup of %s failed: %s", volume_id, exc)

            try:
                attached = self.cloud.is_attached(volume_id, node_id)
            except Exception as exc:
                log.debug("ControllerUnpublishVolume: attachment check failed: %s", exc)
                attached = False
            if not attached:
                log.debug(
                    "ControllerUnpublishVolume: volume %s is not attached to %s", volume_id, node_id
                )
                return

            try:
                self.cloud.detach_disk(volume_id, node_id)
            except Exception as exc:
                raise CsiError(
                    StatusCode.INTERNAL,
                    f"Could not detach volume {_quote(volume_id)} from node {_quote(node_id)}: {exc}",
                ) from exc
            log.debug("ControllerUnpublishVolume: volume %s detached from node %s", volume_id, node_id)

    def controller_get_capabilities(self) -> list[ControllerCapability]:
        return list(CONTROLLER_CAPABILITIES)

    def get_capacity(self, request: Any) -> Any:
        raise CsiError(StatusCode.UNIMPLEMENTED, "")

    def list_volumes(self, request: Any) -> Any:
        raise CsiError(StatusCode.UNIMPLEMENTED, "")

    def validate_volume_capabilities(
        self, request: ValidateVolumeCapabilitiesRequest
    ) -> ValidateVolumeCapabilitiesResponse:
        log.debug("ValidateVolumeCapabilities: called with args %s", request)
        volume_id = request.volume_id
        if not volume_id:
            raise CsiError(StatusCode.INVALID_ARGUMENT, "Volume ID not provided")

        caps = request.volume_capabilities
        if not caps:
            raise CsiError(StatusCode.INVALID_ARGUMENT, "Volume capabilities not provided")

        try:
            self.cloud.get_disk_by_id(volume_id)
        except CloudNotFoundError as exc:
            raise CsiError(StatusCode.NOT_FOUND, "Volume not found") from exc
        except Exception as exc:
            raise CsiError(
                StatusCode.INTERNAL,
                f"Could not get volume with ID {_quote(volume_id)}: {exc}",
            ) from exc

        confirmed = list(caps) if is_valid_volume_capabilities(caps) else None
        return ValidateVolumeCapabilitiesResponse(confirmed=confirmed)

    def controller_expand_volume(
        self, request: ControllerExpandVolumeRequest
    ) -> ControllerExpandVolumeResponse:
        log.debug("ControllerExpandVolume: called with args %s", request)
        volume_id = request.volume_id
        if not volume_id:
            raise CsiError(StatusCode.INVALID_ARGUMENT, "Volume ID not provided")

        with self._locked(volume_id):
            cap_range = request.capacity_range
            if cap_range is None:
                raise CsiError(StatusCode.INVALID_ARGUMENT, "Capacity range not provided")

            new_size = round_up_bytes(cap_range.required_bytes)
            limit = cap_range.limit_bytes
            if 0 < limit < new_size:
                raise CsiError(
                    StatusCode.INVALID_ARGUMENT,
                    "After round-up, volume size exceeds the limit specified",
                )

            try:
                actual_gib = self.cloud.resize_disk(volume_id, new_size)
            except Exception as exc:
                raise CsiError(
                    StatusCode.INTERNAL, f"Could not resize volume {_quote(volume_id)}: {exc}"
                ) from exc

            return ControllerExpandVolumeResponse(
                capacity_bytes=gib_to_bytes(actual_gib),
                node_expansion_required=True,
            )

    def controller_get_volume(self, request: Any) -> Any:
        raise CsiError(StatusCode.UNIMPLEMENTED, "")

    def create_snapshot(self, request: Any) -> Any:
        raise CsiError(StatusCode.UNIMPLEMENTED, "")

    def delete_snapshot(self, request: Any) -> Any:
        raise CsiError(StatusCode.UNIMPLEMENTED, "")

    def list_snapshots(self, request: Any) -> Any:
        raise CsiError(StatusCode.UNIMPLEMENTED, "")