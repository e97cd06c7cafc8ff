import json

import pytest

from qnnet.training import pipelines


def test_presets_are_copies():
    presets = pipelines.presets()
    assert {"sine-bfgs", "sine-dfp", "sine-levenberg-marquardt", "blobs-softmax", "xor-logistic"} <= set(
        presets
    )
    presets["sine-bfgs"]["train"]["seed"] = -1
    assert pipelines.load_preset("sine-bfgs")["train"]["seed"] == 7


def test_merge_config_is_deep():
    base = {"train": {"seed": 1, "maximum_epochs_number": 10}, "data": {"name": "sine"}}
    merged = pipelines.merge_config(base, {"train": {"seed": 2}})
    assert merged == {"train": {"seed": 2, "maximum_epochs_number": 10}, "data": {"name": "sine"}}
    assert base["train"]["seed"] == 1


def test_load_preset_from_json_and_yaml(tmp_path):
    preset = pipelines.load_preset("xor-logistic")
    json_path = tmp_path / "preset.json"
    json_path.write_text(json.dumps(preset))
    assert pipelines.load_preset(json_path) == preset

    yaml_path = tmp_path / "preset.yaml"
    yaml_path.write_text(
        "data:\n  name: xor\nmodel:\n  layers: [2, 3, 1]\n  output: probabilistic\n"
        "train:\n  algorithm: quasi_newton\n  maximum_epochs_number: 3\n"
    )
    loaded = pipelines.load_preset(yaml_path)
    assert loaded["model"]["layers"] == [2, 3, 1]


def test_load_preset_errors(tmp_path):
    with pytest.raises(KeyError, match="Available presets"):
        pipelines.load_preset("does-not-exist")
    with pytest.raises(FileNotFoundError):
        pipelines.load_preset(tmp_path / "missing.json")
    incomplete = tmp_path / "incomplete.json"
    incomplete.write_text(json.dumps({"data": {"name": "sine"}}))
    with pytest.raises(KeyError, match="model"):
        pipelines.load_preset(incomplete)


def test_unknown_training_settings_are_rejected(tmp_path):
    config = pipelines.load_preset("sine-bfgs")
    config["train"]["momentum"] = 0.9
    config["train"]["run_dir"] = str(tmp_path / "run")
    with pytest.raises(KeyError, match="momentum"):
        pipelines.run_pipeline(config)


def test_architecture_must_match_data(tmp_path):
    config = pipelines.load_preset("sine-bfgs")
    config["model"]["layers"] = [2, 4, 1]
    config["train"]["run_dir"] = str(tmp_path / "run")
    with pytest.raises(ValueError, match="inputs"):
        pipelines.run_pipeline(config)
    config["model"]["layers"] = [1, 4, 1]
    config["train"]["algorithm"] = "adam"
    with pytest.raises(ValueError, match="Unknown training algorithm"):
        pipelines.run_pipeline(config)


def test_cross_entropy_on_perceptron_output_warns(tmp_path):
    config = pipelines.load_preset("sine-bfgs")
    config["loss"] = {"name": "ce"}
    config["train"]["maximum_epochs_number"] = 1
    config["train"]["run_dir"] = str(tmp_path / "run")
    with pytest.warns(UserWarning, match="Cross-entropy"):
        pipelines.run_pipeline(config)
