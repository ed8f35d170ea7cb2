"""Tests for settings."""

import pytest
from pydantic import ValidationError

from procmetrics.config import Settings
from procmetrics.exceptions import ConfigurationError

VARIABLES = [
    "PROCMETRICS_PROC_ROOT",
    "PROCMETRICS_CGROUP_ROOT",
    "PROCMETRICS_PS",
    "PROCMETRICS_VMMAP",
    "PROCMETRICS_MEMORY_SCALE",
    "PROCMETRICS_REFRESH",
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in VARIABLES:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    """Test settings default to the real system locations."""
    settings = Settings.from_env()

    assert settings.proc_root == "/proc"
    assert settings.cgroup_root == "/sys/fs/cgroup"
    assert settings.ps_command == "ps"
    assert settings.vmmap_command == "/usr/bin/vmmap"
    assert settings.memory_scale == 512
    assert settings.refresh_interval == 2.0


def test_from_env(monkeypatch):
    """Test every setting can be overridden from the environment."""
    monkeypatch.setenv("PROCMETRICS_PROC_ROOT", "/tmp/proc")
    monkeypatch.setenv("PROCMETRICS_CGROUP_ROOT", "/tmp/cgroup")
    monkeypatch.setenv("PROCMETRICS_PS", "/opt/bin/ps")
    monkeypatch.setenv("PROCMETRICS_VMMAP", "/opt/bin/vmmap")
    monkeypatch.setenv("PROCMETRICS_MEMORY_SCALE", "1024")
    monkeypatch.setenv("PROCMETRICS_REFRESH", "0.5")

    settings = Settings.from_env()

    assert settings.proc_root == "/tmp/proc"
    assert settings.cgroup_root == "/tmp/cgroup"
    assert settings.ps_command == "/opt/bin/ps"
    assert settings.vmmap_command == "/opt/bin/vmmap"
    assert settings.memory_scale == 1024
    assert settings.refresh_interval == 0.5


def test_empty_values_use_defaults(monkeypatch):
    """Test an empty variable is treated as unset."""
    monkeypatch.setenv("PROCMETRICS_MEMORY_SCALE", "")

    assert Settings.from_env().memory_scale == 512


def test_keyword_arguments():
    """Test settings can be built directly by field name."""
    settings = Settings(ps_command="/opt/bin/ps", vmmap_command="/opt/bin/vmmap")

    assert settings.ps_command == "/opt/bin/ps"
    assert settings.vmmap_command == "/opt/bin/vmmap"


def test_refresh_minimum(monkeypatch):
    """Test the refresh interval is clamped to a minimum."""
    assert Settings(refresh_interval=0.01).refresh_interval == 0.1

    monkeypatch.setenv("PROCMETRICS_REFRESH", "0")
    assert Settings.from_env().refresh_interval == 0.1


@pytest.mark.parametrize(
    ("name", "value"),
    [("PROCMETRICS_MEMORY_SCALE", "lots"), ("PROCMETRICS_REFRESH", "soon"), ("PROCMETRICS_MEMORY_SCALE", "0")],
)
def test_invalid_values(monkeypatch, name, value):
    """Test invalid numbers raise ConfigurationError naming the variable."""
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError, match=name):
        Settings.from_env()


def test_invalid_keyword_argument():
    """Test direct construction validates too."""
    with pytest.raises(ValidationError):
        Settings(memory_scale=0)


def test_settings_are_frozen():
    """Test that Settings is immutable (frozen)."""
    settings = Settings()

    with pytest.raises(ValidationError):
        settings.proc_root = "/elsewhere"
