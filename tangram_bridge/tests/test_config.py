"""Tests for BridgeConfig loading and validation."""

import math

import pytest

from tangram_bridge.bridge.config import BridgeConfig, ToleranceProfile


def test_defaults():
    """Test 1: Standard tolerances by default."""
    print("Test 1: Defaults...", end=" ")

    config = BridgeConfig()
    assert config.position_tolerance == 0.25
    assert math.isclose(config.rotation_tolerance, math.radians(10))
    assert config.validation_mode == "immediate"

    print("✓")


def test_from_dict_with_profile():
    """Test 2: Profile applied before explicit options."""
    print("Test 2: from_dict + profile...", end=" ")

    config = BridgeConfig.from_dict({"profile": "expert", "movement_threshold": 0.5})
    assert config.position_tolerance == 0.08
    assert math.isclose(config.rotation_tolerance, math.radians(3))
    assert config.movement_threshold == 0.5

    config = BridgeConfig.from_dict({"profile": "easy", "position_tolerance": 0.3})
    assert config.position_tolerance == 0.3
    assert math.isclose(config.rotation_tolerance, ToleranceProfile.EASY.rotation_rad)

    print("✓")


def test_from_dict_rejects_unknown_keys():
    with pytest.raises(ValueError, match="Unknown config option"):
        BridgeConfig.from_dict({"position_tolerance": 0.2, "warp_factor": 9})


def test_from_dict_rejects_unknown_profile():
    with pytest.raises(ValueError, match="profile"):
        BridgeConfig.from_dict({"profile": "impossible"})


@pytest.mark.parametrize("options", [
    {"position_tolerance": 0.0},
    {"jitter_threshold": 0.5, "movement_threshold": 0.4},
    {"validation_mode": "eventually"},
    {"settle_dwell_duration": -1.0},
    {"triangle_leg_ratios": {"large_triangle": 1.0}},
])
def test_invalid_values_rejected(options):
    with pytest.raises(ValueError):
        BridgeConfig(**options)


def test_to_dict_roundtrip_keys():
    config = BridgeConfig(record_timings=True)
    data = config.to_dict()
    assert data["record_timings"] is True
    assert BridgeConfig.from_dict(data) == config
