"""Data set registry and metadata contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, MutableMapping

from ..core.types import DataSet

TASK_TYPES = ("regression", "multiclass", "binary")


@dataclass(frozen=True)
class DataSpec:
    """Structural information about a data set.

    Attributes
    ----------
    inputs_number:
        Number of input variables per sample.
    targets_number:
        Number of target variables per sample, as consumed by the network.
    task_type:
        One of ``{"regression", "multiclass", "binary"}``.
    num_classes:
        Number of classes when ``task_type`` is ``"multiclass"``.
    normalization:
        Scaling applied to inputs or targets, kept for reproducibility.
    """

    inputs_number: int
    targets_number: int
    task_type: str
    num_classes: int | None = None
    normalization: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DatasetSpec:
    """A registered data set materialised in memory."""

    name: str
    data_set: DataSet
    data_spec: DataSpec
    provenance: Dict[str, Any]
    splits: Dict[str, int]


DatasetFactory = Callable[..., DatasetSpec]


_REGISTRY: MutableMapping[str, DatasetFactory] = {}


def register_dataset(
    name: str | None = None,
    factory: DatasetFactory | None = None,
) -> Callable[[DatasetFactory], DatasetFactory] | DatasetFactory:
    """Register a data set factory.

    Usable as a decorator::

        @register_dataset("sine")
        def make_sine(**options):
            ...

    or directly as ``register_dataset("sine", make_sine)``.
    """

    def _decorator(func: DatasetFactory) -> DatasetFactory:
        _REGISTRY[str(name or func.__name__)] = func
        return func

    if factory is not None:
        return _decorator(factory)
    if name is None:
        raise TypeError("register_dataset requires a name when used without a decorator")
    return _decorator


def get_dataset(name: str, **options: Any) -> DatasetSpec:
    """Build the :class:`DatasetSpec` registered under ``name``."""

    if name not in _REGISTRY:
        available = ", ".join(available_datasets())
        raise KeyError(f"Unknown dataset {name!r}. Available datasets: {available}")
    spec = _REGISTRY[name](**options)
    _validate_spec(spec)
    return spec


def available_datasets() -> Iterable[str]:
    """Return the sorted list of available data set identifiers."""

    return sorted(_REGISTRY)


def _validate_spec(spec: DatasetSpec) -> None:
    if spec.data_spec.task_type not in TASK_TYPES:
        raise ValueError(f"Invalid task type: {spec.data_spec.task_type}")
    if spec.data_spec.task_type == "multiclass" and spec.data_spec.num_classes is None:
        raise ValueError("Multiclass datasets must define num_classes")
    training = spec.data_set.training
    if training.inputs.shape[1] != spec.data_spec.inputs_number:
        raise ValueError(
            f"Dataset {spec.name!r} declares {spec.data_spec.inputs_number} inputs, "
            f"but its samples have {training.inputs.shape[1]}"
        )
    if training.targets.shape[1] != spec.data_spec.targets_number:
        raise ValueError(
            f"Dataset {spec.name!r} declares {spec.data_spec.targets_number} targets, "
            f"but its samples have {training.targets.shape[1]}"
        )
    for split, count in spec.splits.items():
        if count < 0:
            raise ValueError(f"Split {split!r} has negative sample count {count}")


__all__ = [
    "DataSpec",
    "DatasetSpec",
    "available_datasets",
    "get_dataset",
    "register_dataset",
]
