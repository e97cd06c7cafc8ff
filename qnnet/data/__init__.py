"""Data set registry and synthetic data sets."""

# Ensure built-in data sets register themselves when the package is imported.
from . import synthetic as _synthetic  # noqa: F401
from .registry import DataSpec, DatasetSpec, available_datasets, get_dataset, register_dataset
from .utils import deterministic_split, make_data_set

__all__ = [
    "DataSpec",
    "DatasetSpec",
    "available_datasets",
    "deterministic_split",
    "get_dataset",
    "make_data_set",
    "register_dataset",
]
