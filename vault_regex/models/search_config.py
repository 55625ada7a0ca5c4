"""Engine configuration supplied per call by the settings layer."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

DEFAULT_FILE_EXTENSIONS = ["md", "txt", "json", "js", "ts", "css", "html"]


class SearchConfig(BaseModel):
    """
    Configuration for search and replace operations.

    Read-only input to the engine; the settings layer builds a fresh instance
    whenever configuration is reloaded.
    """

    default_pattern: str = Field(default="", description="Pattern prefilled in search forms")
    case_sensitive: bool = Field(default=False, description="Case-sensitive matching")
    multiline: bool = Field(
        default=False, description="Multiline mode (^ and $ match at line boundaries)"
    )
    max_results_per_file: int = Field(default=50, description="Per-document match cap")
    max_total_results: int = Field(default=1000, description="Global match cap for one run")
    file_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_FILE_EXTENSIONS),
        description="Extensions eligible for search, without leading dot",
    )
    include_hidden_files: bool = Field(
        default=False, description="Include files whose name starts with '.'"
    )
    max_file_size_bytes: int = Field(
        default=5 * 1024 * 1024, description="Documents larger than this are not scanned"
    )
    exclude_patterns: list[str] = Field(
        default_factory=list,
        description="Path exclusions (regex, or plain substring when not a valid regex)",
    )
    timeout_seconds: float = Field(default=30.0, description="Deadline for one operation")
    search_batch_size: int = Field(default=10, description="Documents scanned concurrently")
    replace_batch_size: int = Field(default=5, description="Documents per progress report")
    context_window: int = Field(default=3, description="Lines of context around a match")
    confirm_before_replace: bool = Field(
        default=True, description="Require confirmation before a vault-wide replace"
    )
    history_enabled: bool = Field(default=True, description="Record successful searches")
    library_enabled: bool = Field(default=True, description="Allow pattern library changes")
    max_pattern_length: int = Field(default=500, description="Longest accepted pattern")
    max_complexity: int = Field(default=1000, description="Highest accepted complexity score")
    state_reset_delay_seconds: float = Field(
        default=1.5, description="Delay before Cancelled/Error return to Idle"
    )

    @field_validator(
        "max_results_per_file",
        "max_total_results",
        "max_file_size_bytes",
        "search_batch_size",
        "replace_batch_size",
        "context_window",
        "max_pattern_length",
        "max_complexity",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Reject zero and negative limits."""
        if v < 1:
            msg = "must be a positive integer"
            raise ValueError(msg)
        return v

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Reject non-positive deadlines."""
        if v <= 0:
            msg = "timeout_seconds must be positive"
            raise ValueError(msg)
        return v

    @field_validator("state_reset_delay_seconds")
    @classmethod
    def validate_reset_delay(cls, v: float) -> float:
        if v < 0:
            msg = "state_reset_delay_seconds cannot be negative"
            raise ValueError(msg)
        return v

    @field_validator("file_extensions", mode="before")
    @classmethod
    def validate_extensions(cls, v: object) -> list[str]:
        """Accept a list or a comma separated string; normalize each extension."""
        if isinstance(v, str):
            v = v.split(",")
        if not isinstance(v, list):
            msg = "file_extensions must be a list or comma separated string"
            raise ValueError(msg)

        extensions: list[str] = []
        for raw in v:
            ext = str(raw).strip().lstrip(".").lower()
            if ext and ext not in extensions:
                extensions.append(ext)

        if not extensions:
            msg = "file_extensions cannot be empty"
            raise ValueError(msg)
        return extensions

    def build_flags(self) -> str:
        """Default flag string: global, plus case-insensitive and multiline as configured."""
        flags = ""
        if not self.case_sensitive:
            flags += "i"
        if self.multiline:
            flags += "m"
        return flags + "g"
