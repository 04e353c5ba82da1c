"""CSI controller logic, fibre channel disk discovery and mount helpers for Power Systems Virtual Server block volumes."""

__version__ = "0.0.1"

__all__ = [
    "controller",
    "csi",
    "fibrechannel",
    "mount",
    "util",
    "validation",
    "version",
]