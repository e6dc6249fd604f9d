import json

import pytest

from ttsmaster.config import (
    BootstrapConfig,
    ShiftConfig,
    TTSConfig,
    default_profiles,
    serialize_profiles,
)
from ttsmaster.errors import ConfigError


def test_flat_mapping_reaches_every_section() -> None:
    cfg = TTSConfig.from_mapping(
        {
            "method": "derivative",
            "reference_temperature": 25,
            "vertical_shift": True,
            "smoothing_parameter": 0.3,
            "bootstrap_replicates": 800,
            "confidence_level": 0.9,
            "random_seed": 9,
        }
    )
    assert cfg.reference_temperature == 25.0
    assert cfg.shift.method == "derivative"
    assert cfg.shift.vertical_shift is True
    assert cfg.smoothing.smoothing_parameter == 0.3
    assert cfg.bootstrap.replicates == 800
    assert cfg.bootstrap.confidence_level == 0.9
    assert cfg.bootstrap.seed == 9


def test_auto_smoothing_parameter_means_gcv() -> None:
    cfg = TTSConfig.from_mapping({"smoothing_parameter": "auto"})
    assert cfg.smoothing.smoothing_parameter is None
    with pytest.raises(ConfigError):
        TTSConfig.from_mapping({"smoothing_parameter": "smooth"})


def test_nested_sections_override_fields() -> None:
    cfg = TTSConfig.from_mapping({"shift": {"interpolation": "linear"}, "bootstrap": {"workers": 3}})
    assert cfg.shift.interpolation == "linear"
    assert cfg.bootstrap.workers == 3


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(ConfigError):
        TTSConfig.from_mapping({"shift_method": "wlf"})
    with pytest.raises(ConfigError):
        TTSConfig.from_mapping({"shift": {"not_a_field": 1}})


def test_vertical_shift_requires_derivative_method() -> None:
    with pytest.raises(ConfigError):
        ShiftConfig(method="wlf", vertical_shift=True)


def test_invalid_values_raise_config_error() -> None:
    with pytest.raises(ConfigError):
        ShiftConfig(method="bogus")
    with pytest.raises(ConfigError):
        ShiftConfig(overlap="window")
    with pytest.raises(ConfigError):
        BootstrapConfig(confidence_level=1.0)


def test_worker_default_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("TTSMASTER_WORKERS", "6")
    assert BootstrapConfig().workers == 6
    monkeypatch.setenv("TTSMASTER_WORKERS", "many")
    assert BootstrapConfig().workers == 1


def test_profiles_serialize_in_name_order() -> None:
    payload = serialize_profiles()
    names = [p["name"] for p in payload["profiles"]]
    assert names == sorted(default_profiles())
    json.dumps(payload)
    creep = default_profiles()["creep_compliance"]
    assert creep.shift.vertical_shift is True
