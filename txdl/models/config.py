"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from txdl.utils.formatting import MIB, parse_size

ENGINES = ("aria2", "native")

# aria2c rejects values outside these ranges, so they are enforced up front
MAX_CONNECTIONS_LIMIT = 16
MIN_SPLIT_SIZE_RANGE = (1 * MIB, 1024 * MIB)


class DownloadConfig(BaseModel):
    """A validated configuration model for the application."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Target
    download_dir: Path = Field(default_factory=lambda: Path.home() / "Downloads")
    engine: str = "aria2"
    aria2c_path: str = "aria2c"

    # Transfer tuning (mirrors the ARIA2_* environment variables)
    max_connections: int = 16
    min_split_size: int = 1 * MIB
    max_concurrent_downloads: int = 3
    timeout: int = 60
    retry_wait: int = 3
    max_tries: int = 5
    split: int = 16

    # Behaviour
    required_space_mb: int = 100
    check_certificate: bool = False
    cleanup_on_failure: bool = True

    @field_validator("engine")
    @classmethod
    def validate_engine(cls, v: str) -> str:
        """Ensures the engine is one of the supported backends."""
        v = v.lower()
        if v not in ENGINES:
            raise ValueError(f"Engine must be one of: {', '.join(ENGINES)}.")
        return v

    @field_validator("download_dir", mode="before")
    @classmethod
    def expand_download_dir(cls, v):
        """
        Expands '~' and anchors relative paths at the current directory, so
        aria2c (which runs inside the download directory on resume) sees the
        same location.
        """
        return Path(v).expanduser().absolute() if v else v

    @field_validator("min_split_size", mode="before")
    @classmethod
    def validate_min_split_size(cls, v) -> int:
        """Accepts aria2-style sizes ('1M', '512K') and enforces aria2's range."""
        size = parse_size(v)
        low, high = MIN_SPLIT_SIZE_RANGE
        if size < low or size > high:
            raise ValueError("Minimum split size must be between 1M and 1024M.")
        return size

    @field_validator("max_connections")
    @classmethod
    def validate_connections(cls, v: int) -> int:
        """Ensures a connection count aria2c will accept."""
        if v < 1 or v > MAX_CONNECTIONS_LIMIT:
            raise ValueError(
                f"Max connections must be between 1 and {MAX_CONNECTIONS_LIMIT}."
            )
        return v

    @field_validator(
        "max_concurrent_downloads", "timeout", "max_tries", "split", "required_space_mb"
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be a positive integer.")
        return v

    @field_validator("retry_wait")
    @classmethod
    def validate_retry_wait(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Retry wait cannot be negative.")
        return v

    @property
    def connection_count(self) -> int:
        """The number of parallel connections actually opened for one file."""
        return min(self.split, self.max_connections)

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        return set(cls.model_fields)
