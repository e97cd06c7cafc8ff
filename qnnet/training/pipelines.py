"""Configuration-driven training runs with presets and run artifacts."""

from __future__ import annotations

import json
import logging
import time
import warnings
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Mapping

from ..core.device import ExecutionContext
from ..core.network import NeuralNetwork
from ..core.types import RunResult
from ..data import registry
from ..reporting.artifacts import write_manifest
from ..reporting.metrics import CsvSink, JsonlSink
from ..reporting.plots import PlotAdapter
from ..reporting.summary import write_summary
from .levenberg_marquardt import LevenbergMarquardtAlgorithm
from .losses import REGISTRY as LOSS_REGISTRY, CrossEntropyError
from .metrics import compute_metrics, default_metrics
from .optimization import OptimizationAlgorithm
from .quasi_newton import QuasiNewtonMethod

logger = logging.getLogger(__name__)

_ALGORITHMS = {
    "quasi_newton": QuasiNewtonMethod,
    "levenberg_marquardt": LevenbergMarquardtAlgorithm,
}

# Keys of the ``train`` section consumed here rather than by the optimizer.
_PIPELINE_KEYS = {"algorithm", "run_dir", "enable_plots", "seed", "summary_tail"}

_PRESETS: Dict[str, Mapping[str, object]] = {
    "sine-bfgs": {
        "data": {"name": "sine", "options": {"freq": 1, "n_points": 64, "seed": 0}},
        "model": {"layers": [1, 6, 1], "activation": "HyperbolicTangent", "output": "perceptron"},
        "loss": {"name": "mse", "regularization": "NoRegularization", "regularization_weight": 0.0},
        "train": {
            "algorithm": "quasi_newton",
            "inverse_hessian_approximation_method": "BFGS",
            "maximum_epochs_number": 200,
            "maximum_selection_failures": 20,
            "display": False,
            "seed": 7,
            "run_dir": "runs/sine-bfgs",
            "enable_plots": False,
        },
    },
    "sine-dfp": {
        "data": {"name": "sine", "options": {"freq": 1, "n_points": 64, "seed": 0}},
        "model": {"layers": [1, 6, 1], "activation": "HyperbolicTangent", "output": "perceptron"},
        "loss": {"name": "sse", "regularization": "L2", "regularization_weight": 0.001},
        "train": {
            "algorithm": "quasi_newton",
            "inverse_hessian_approximation_method": "DFP",
            "learning_rate_method": "GoldenSection",
            "maximum_epochs_number": 200,
            "display": False,
            "seed": 7,
            "run_dir": "runs/sine-dfp",
            "enable_plots": False,
        },
    },
    "sine-levenberg-marquardt": {
        "data": {"name": "sine", "options": {"freq": 1, "n_points": 64, "seed": 0}},
        "model": {"layers": [1, 6, 1], "activation": "HyperbolicTangent", "output": "perceptron"},
        "loss": {"name": "sse", "regularization": "NoRegularization", "regularization_weight": 0.0},
        "train": {
            "algorithm": "levenberg_marquardt",
            "maximum_epochs_number": 100,
            "display": False,
            "seed": 7,
            "run_dir": "runs/sine-lm",
            "enable_plots": False,
        },
    },
    "blobs-softmax": {
        "data": {"name": "blobs", "options": {"n_samples": 90, "centers": 3, "seed": 0}},
        "model": {
            "layers": [2, 5, 3],
            "activation": "HyperbolicTangent",
            "output": "probabilistic",
            "output_activation": "Softmax",
        },
        "loss": {"name": "ce", "regularization": "L2", "regularization_weight": 0.001},
        "train": {
            "algorithm": "quasi_newton",
            "maximum_epochs_number": 100,
            "display": False,
            "seed": 3,
            "run_dir": "runs/blobs-softmax",
            "enable_plots": False,
        },
    },
    "xor-logistic": {
        "data": {"name": "xor", "options": {"repeats": 1}},
        "model": {
            "layers": [2, 3, 1],
            "activation": "HyperbolicTangent",
            "output": "probabilistic",
            "output_activation": "Logistic",
        },
        "loss": {"name": "sse", "regularization": "NoRegularization", "regularization_weight": 0.0},
        "train": {
            "algorithm": "quasi_newton",
            "maximum_epochs_number": 300,
            "display": False,
            "seed": 11,
            "run_dir": "runs/xor-logistic",
            "enable_plots": False,
        },
    },
}


def _read_preset_file(path: Path) -> Mapping[str, object]:
    text = path.read_text()
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        try:
            import yaml  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("PyYAML is required to load preset files in YAML format") from exc
        data = yaml.safe_load(text) or {}
    elif suffix == ".json":
        data = json.loads(text or "{}")
    else:
        raise ValueError(f"Unsupported preset file type: {path.suffix}")

    if not isinstance(data, Mapping):
        raise TypeError(f"Preset {path.name} must decode to a mapping")
    missing = {"data", "model", "train"} - set(data)
    if missing:
        raise KeyError(f"Preset {path.name} is missing required sections: {', '.join(sorted(missing))}")
    return data


def presets() -> Mapping[str, Mapping[str, object]]:
    return {name: deepcopy(cfg) for name, cfg in _PRESETS.items()}


def load_preset(name: str | Path) -> Mapping[str, object]:
    """Return a built-in preset by name, or read one from a JSON/YAML file."""

    if str(name) in _PRESETS:
        return deepcopy(_PRESETS[str(name)])
    path = Path(name)
    if path.suffix.lower() in {".yaml", ".yml", ".json"}:
        if not path.exists():
            raise FileNotFoundError(f"Preset file not found: {path}")
        return _read_preset_file(path)
    available = ", ".join(sorted(_PRESETS))
    raise KeyError(f"Unknown preset {name!r}. Available presets: {available}")


def merge_config(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep-merge ``override`` into a copy of ``base``."""

    merged: Dict[str, Any] = deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def build_network(
    model_cfg: Mapping[str, object],
    data_spec: registry.DataSpec,
    *,
    seed: int,
    context: ExecutionContext | None = None,
) -> NeuralNetwork:
    layers = [int(size) for size in model_cfg.get("layers", [])]
    if not layers:
        layers = [data_spec.inputs_number, int(model_cfg.get("hidden", 4)), data_spec.targets_number]
    if layers[0] != data_spec.inputs_number:
        raise ValueError(
            f"Configured {layers[0]} inputs but the data set has {data_spec.inputs_number}"
        )
    if layers[-1] != data_spec.targets_number:
        raise ValueError(
            f"Configured {layers[-1]} outputs but the data set has {data_spec.targets_number}"
        )
    activation = str(model_cfg.get("activation", "HyperbolicTangent"))
    output = str(model_cfg.get("output", "perceptron"))
    model_seed = int(model_cfg.get("seed", seed))
    if output == "perceptron":
        return NeuralNetwork.approximation(
            layers,
            activation,
            output_activation=str(model_cfg.get("output_activation", "Linear")),
            seed=model_seed,
            context=context,
        )
    if output == "probabilistic":
        output_activation = model_cfg.get("output_activation")
        return NeuralNetwork.classification(
            layers,
            activation,
            output_activation=str(output_activation) if output_activation is not None else None,
            seed=model_seed,
            context=context,
        )
    raise ValueError(f"Unknown output layer type: {output}")


def build_optimizer(train_cfg: Mapping[str, object], loss_index) -> OptimizationAlgorithm:
    name = str(train_cfg.get("algorithm", "quasi_newton"))
    if name not in _ALGORITHMS:
        available = ", ".join(sorted(_ALGORITHMS))
        raise ValueError(f"Unknown training algorithm {name!r}. Available: {available}")
    settings = {key: value for key, value in train_cfg.items() if key not in _PIPELINE_KEYS}
    return _ALGORITHMS[name].from_dict(settings, loss_index)


def run_pipeline(config: Mapping[str, object]) -> RunResult:
    data_cfg = dict(config["data"])
    model_cfg = dict(config["model"])
    loss_cfg = dict(config.get("loss", {}))
    train_cfg = dict(config["train"])
    seed = int(train_cfg.get("seed", 0))

    dataset = registry.get_dataset(str(data_cfg["name"]), **dict(data_cfg.get("options", {})))
    data_set = dataset.data_set

    context = ExecutionContext(int(model_cfg.get("workers", 1)))
    network = build_network(model_cfg, dataset.data_spec, seed=seed, context=context)
    loss_index = LOSS_REGISTRY.create(
        str(loss_cfg.get("name", "mse")),
        network,
        data_set,
        regularization=str(loss_cfg.get("regularization", "NoRegularization")),
        regularization_weight=float(loss_cfg.get("regularization_weight", 0.0)),
    )
    if isinstance(loss_index, CrossEntropyError) and not network.layers[-1].kind.is_probabilistic:
        warnings.warn(
            "Cross-entropy on a perceptron output layer: outputs are clipped into (0, 1). "
            "Use output=\"probabilistic\" for classification.",
            UserWarning,
            stacklevel=2,
        )
    optimizer = build_optimizer(train_cfg, loss_index)

    run_dir = _resolve_run_dir(train_cfg, dataset.name)
    run_dir.mkdir(parents=True, exist_ok=True)
    logger.info(
        "Training %s on %s: layers=%s parameters=%d loss=%s",
        train_cfg.get("algorithm", "quasi_newton"),
        dataset.name,
        [network.get_inputs_number()] + [layer.get_neurons_number() for layer in network.layers],
        network.get_parameters_number(),
        type(loss_index).__name__,
    )

    # Wall-clock time would make the logs differ between identical runs.
    jsonl = JsonlSink(
        run_dir / "metrics.jsonl", split="training", seed=seed, exclude=("elapsed_time",)
    )
    csv_sink = CsvSink(run_dir / "metrics.csv", split="training", exclude=("elapsed_time",))
    plots = PlotAdapter(run_dir, enable_plots=bool(train_cfg.get("enable_plots", False)))

    with context:
        results = optimizer.perform_training(callbacks=[jsonl, csv_sink, plots])
        testing_metrics = _evaluate_testing(network, loss_index, dataset)
    plots.close()

    (run_dir / "metrics_test.json").write_text(json.dumps(testing_metrics, indent=2, sort_keys=True))

    stopping_condition = results.write_stopping_condition()
    manifest = write_manifest(
        run_dir / "manifest.json",
        config=json.loads(json.dumps(config)),
        dataset_provenance=dataset.provenance,
        training={
            "algorithm": type(optimizer).__name__,
            "settings": optimizer.to_dict(),
            "stopping_condition": stopping_condition,
            "epochs": results.epochs_number,
            "loss": results.loss,
        },
    )
    summary_path = write_summary(
        jsonl.path,
        run_dir / "summary.json",
        tail=int(train_cfg.get("summary_tail", 32)),
        stopping_condition=stopping_condition,
    )
    (run_dir / "config.json").write_text(json.dumps(config, indent=2))

    logger.info(
        "Finished after %d epochs: %s (loss=%.6g)",
        results.epochs_number,
        stopping_condition,
        results.loss,
    )
    return RunResult(
        epochs=results.epochs_number,
        metrics_path=str(jsonl.path),
        manifest_path=manifest,
        summary_path=summary_path,
        stopping_condition=stopping_condition,
        loss=float(results.loss),
    )


def _evaluate_testing(network: NeuralNetwork, loss_index, dataset: registry.DatasetSpec) -> Dict[str, float]:
    testing = dataset.data_set.testing
    if testing is None:
        return {}
    outputs = network.calculate_outputs(testing.inputs)
    data_spec = dataset.data_spec
    names: List[str] = default_metrics(data_spec.task_type, num_classes=data_spec.num_classes)
    metrics = dict(compute_metrics(names, outputs, testing.targets, num_classes=data_spec.num_classes))
    metrics["error"] = loss_index.calculate_batch_error(testing)
    return metrics


def _resolve_run_dir(train_cfg: Mapping[str, object], dataset: str) -> Path:
    if "run_dir" in train_cfg:
        return Path(str(train_cfg["run_dir"]))
    timestamp = time.strftime("%Y%m%d-%H%M%S")
    return Path("runs") / timestamp / dataset


__all__ = [
    "build_network",
    "build_optimizer",
    "load_preset",
    "merge_config",
    "presets",
    "run_pipeline",
]
