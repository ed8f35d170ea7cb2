"""Runtime settings for procmetrics."""

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from procmetrics.exceptions import ConfigurationError

ENV_PREFIX = "PROCMETRICS_"

DEFAULT_PROC_ROOT = "/proc"
DEFAULT_CGROUP_ROOT = "/sys/fs/cgroup"
DEFAULT_PS = "ps"
DEFAULT_VMMAP = "/usr/bin/vmmap"

MINIMUM_REFRESH = 0.1


def _variable(location: object) -> str:
    name = str(location).upper()
    return name if name.startswith(ENV_PREFIX) else ENV_PREFIX + name


class Settings(BaseSettings):
    """Paths and commands used by the backends, plus display options."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    proc_root: str = DEFAULT_PROC_ROOT
    cgroup_root: str = DEFAULT_CGROUP_ROOT
    ps_command: str = Field(default=DEFAULT_PS, validation_alias=ENV_PREFIX + "PS")
    vmmap_command: str = Field(default=DEFAULT_VMMAP, validation_alias=ENV_PREFIX + "VMMAP")
    # MiB, full width of a memory bar
    memory_scale: int = Field(default=512, gt=0)
    # Seconds between captures in the top viewer
    refresh_interval: float = Field(default=2.0, validation_alias=ENV_PREFIX + "REFRESH")

    @field_validator("refresh_interval")
    @classmethod
    def clamp_refresh_interval(cls, v: float) -> float:
        return max(MINIMUM_REFRESH, v)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``PROCMETRICS_*`` environment variables."""
        try:
            return cls()
        except ValidationError as e:
            problems = "; ".join(
                f"{_variable(error['loc'][0]) if error['loc'] else ENV_PREFIX}: {error['msg']}"
                for error in e.errors()
            )
            raise ConfigurationError(f"Invalid value for {problems}") from e
