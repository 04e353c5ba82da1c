"""Driver modes, driver options and their validation."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Union

from .csi import DEFAULT_CSI_ENDPOINT


class Mode(str, enum.Enum):
    """Operating mode of the driver."""

    CONTROLLER = "controller"
    NODE = "node"
    ALL = "all"

    def __str__(self) -> str:
        return self.value


SUPPORTED_MODES = (Mode.ALL, Mode.CONTROLLER, Mode.NODE)


@dataclass
class Options:
    """Settings of a driver instance."""

    endpoint: str = DEFAULT_CSI_ENDPOINT
    extra_tags: dict[str, str] = field(default_factory=dict)
    mode: Union[Mode, str] = Mode.ALL
    volume_attach_limit: int = 0
    kubernetes_cluster_id: str = ""
    debug: bool = False


OptionSetter = Callable[[Options], None]


def with_endpoint(endpoint: str) -> OptionSetter:
    def apply(options: Options) -> None:
        options.endpoint = endpoint

    return apply


def with_mode(mode: Union[Mode, str]) -> OptionSetter:
    def apply(options: Options) -> None:
        options.mode = mode

    return apply


def with_debug(debug: bool) -> OptionSetter:
    def apply(options: Options) -> None:
        options.debug = debug

    return apply


def with_volume_attach_limit(volume_attach_limit: int) -> OptionSetter:
    def apply(options: Options) -> None:
        options.volume_attach_limit = volume_attach_limit

    return apply


def _mode_text(mode: Union[Mode, str]) -> str:
    return mode.value if isinstance(mode, Mode) else str(mode)


def validate_mode(mode: Union[Mode, str]) -> None:
    """Raise ValueError unless mode is one of the supported modes."""
    if mode not in SUPPORTED_MODES:
        supported = "[" + " ".join(m.value for m in SUPPORTED_MODES) + "]"
        raise ValueError(
            f"Mode is not supported (actual: {_mode_text(mode)}, supported: {supported})"
        )


def validate_driver_options(options: Options) -> None:
    """Raise ValueError if the options cannot be used to run a driver."""
    try:
        validate_mode(options.mode)
    except ValueError as exc:
        raise ValueError(f"Invalid mode: {exc}") from exc