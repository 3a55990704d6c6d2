"""
Defines custom exceptions for the application. Each one carries the process
exit code it maps to, so the entry point can translate errors directly.
"""


class TxdlError(Exception):
    """Base exception for all application-specific errors."""

    exit_code = 1


class InputError(TxdlError):
    """Raised for invalid arguments, unknown sources or missing input files."""


class ConfigurationError(TxdlError):
    """Raised for issues related to configuration loading or validation."""


class DependencyError(TxdlError):
    """Raised when the aria2c binary cannot be found."""

    exit_code = 2


class StorageError(TxdlError):
    """Raised when the download directory is unusable or the disk is full."""

    exit_code = 3


class DownloadError(TxdlError):
    """Raised when a transfer fails."""

    exit_code = 4


class ResumeError(DownloadError):
    """
    Raised when an interrupted transfer cannot be continued, e.g. because the
    remote file changed since the control file was written.
    """


class DownloadInterrupted(TxdlError):
    """Raised when the user interrupts a transfer with SIGINT or SIGTERM."""

    exit_code = 130
