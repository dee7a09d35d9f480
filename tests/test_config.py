"""Tests for sdfcompose.config.Settings."""

import dataclasses

import pytest

from sdfcompose.config import (
    DEFAULT_SETTINGS,
    ESCALATION_RESOLUTIONS,
    INTERIOR_BIAS,
    Settings,
)


class TestSettings:
    def test_defaults(self):
        assert DEFAULT_SETTINGS.interior_bias == INTERIOR_BIAS
        assert DEFAULT_SETTINGS.escalation_resolutions == ESCALATION_RESOLUTIONS
        assert DEFAULT_SETTINGS.normalize_samples == 11

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_SETTINGS.interior_bias = 0.0

    def test_from_env_without_overrides(self, monkeypatch):
        for name in ("SDFCOMPOSE_SMOOTHNESS", "SDFCOMPOSE_INTERIOR_BIAS", "SDFCOMPOSE_RESOLUTIONS",
                     "SDFCOMPOSE_NORMALIZE_HALF_WIDTH", "SDFCOMPOSE_NORMALIZE_SAMPLES"):
            monkeypatch.delenv(name, raising=False)
        assert Settings.from_env() == Settings()

    def test_from_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SDFCOMPOSE_SMOOTHNESS", "4")
        monkeypatch.setenv("SDFCOMPOSE_INTERIOR_BIAS", "0.25")
        monkeypatch.setenv("SDFCOMPOSE_NORMALIZE_SAMPLES", "21")
        monkeypatch.setenv("SDFCOMPOSE_RESOLUTIONS", "50, 100,")
        settings = Settings.from_env()
        assert settings.default_smoothness == 4.0
        assert settings.interior_bias == 0.25
        assert settings.normalize_samples == 21
        assert settings.escalation_resolutions == (50, 100)

    def test_empty_variable_keeps_default(self, monkeypatch):
        monkeypatch.setenv("SDFCOMPOSE_INTERIOR_BIAS", "")
        assert Settings.from_env().interior_bias == INTERIOR_BIAS

    def test_bad_value_raises(self, monkeypatch):
        monkeypatch.setenv("SDFCOMPOSE_NORMALIZE_SAMPLES", "many")
        with pytest.raises(ValueError):
            Settings.from_env()
