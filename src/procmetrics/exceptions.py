"""Custom exceptions for procmetrics."""


class ProcMetricsError(Exception):
    """Base exception for all procmetrics errors."""


class ConfigurationError(ProcMetricsError):
    """Raised when a setting cannot be parsed."""


class UnsupportedPlatformError(ProcMetricsError):
    """Raised when no process enumeration backend is available."""


class CaptureError(ProcMetricsError):
    """Raised when the process table itself cannot be enumerated."""
