"""
modes.py

Meshing mode resolution.

Partitioning x repartition is a small closed state machine. Strings parse
to UNDEFINED instead of failing, so an unsupported value is reported by
resolve_meshing_mode with the same message whatever its spelling.
"""

from dataclasses import dataclass
from enum import Enum

from errors import ConfigurationError, UnimplementedModeError


class PartitioningMode(Enum):
    UNDEFINED = "undefined"
    SINGLE_BLOCK = "singleBlock"
    AUTO = "auto"

    @classmethod
    def from_string(cls, value: str) -> "PartitioningMode":
        for mode in (cls.SINGLE_BLOCK, cls.AUTO):
            if value == mode.value:
                return mode
        return cls.UNDEFINED


class RepartitionMode(Enum):
    UNDEFINED = "undefined"
    MULTI_RESOLUTION = "multiResolution"

    @classmethod
    def from_string(cls, value: str) -> "RepartitionMode":
        if value == cls.MULTI_RESOLUTION.value:
            return cls.MULTI_RESOLUTION
        return cls.UNDEFINED


@dataclass(frozen=True)
class MeshingMode:
    """Resolved single-block multi-resolution meshing."""
    from_depth_maps: bool
    add_landmarks: bool

    @property
    def description(self) -> str:
        source = "depth maps" if self.from_depth_maps else "SfM only"
        landmarks = " + SfM landmarks" if self.from_depth_maps and self.add_landmarks else ""
        return f"multi-resolution, single block, {source}{landmarks}"


def resolve_meshing_mode(
    partitioning: PartitioningMode,
    repartition: RepartitionMode,
    depth_maps_folder,
    add_landmarks: bool = False,
) -> MeshingMode:
    from_depth_maps = True

    if not depth_maps_folder:
        if repartition is RepartitionMode.MULTI_RESOLUTION and partitioning is PartitioningMode.SINGLE_BLOCK:
            # Landmarks are the only data left
            from_depth_maps = False
            add_landmarks = True
        else:
            raise ConfigurationError(
                "Invalid input options:\n"
                "- Meshing from depth maps require --depth_maps_folder option.\n"
                "- Meshing from SfM require option --partitioning set to 'singleBlock' "
                "and option --repartition set to 'multiResolution'."
            )

    match repartition:
        case RepartitionMode.MULTI_RESOLUTION:
            match partitioning:
                case PartitioningMode.SINGLE_BLOCK:
                    return MeshingMode(from_depth_maps=from_depth_maps, add_landmarks=bool(add_landmarks))
                case PartitioningMode.AUTO:
                    raise UnimplementedModeError(
                        "Meshing mode: 'multiResolution', partitioning: 'auto' is not yet implemented."
                    )
                case PartitioningMode.UNDEFINED:
                    raise ConfigurationError("Partitioning mode is not defined")
        case RepartitionMode.UNDEFINED:
            raise ConfigurationError("Repartition mode is not defined")

    raise ConfigurationError(f"Unhandled meshing mode: {repartition}, {partitioning}")
