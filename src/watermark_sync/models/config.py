"""Configuration models for the watermark synchronizer."""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from watermark_sync.models.watermark import FieldRef, WatermarkSpec


class WatermarkConfig(BaseModel):
    """Configuration for the watermark column and where progress is read from."""

    field: str = Field(default=..., description="Watermark column (and document field) name")
    index: str = Field(default=..., description="Destination index holding synced rows")
    category: str | None = Field(
        default=None, description="Only consider documents of this category (document type)"
    )
    category_field: str = Field(default="type", description="Document field holding the category")

    @field_validator("field", "category_field")
    @classmethod
    def validate_field_ref(cls, v: str) -> str:
        FieldRef.parse(v)
        return v

    def to_spec(self) -> WatermarkSpec:
        return WatermarkSpec(
            field=self.field,
            index=self.index,
            category=self.category,
            category_field=self.category_field,
        )


class DestinationConfig(BaseModel):
    """Configuration for the Elasticsearch destination."""

    hosts: list[str] = Field(
        default_factory=lambda: ["http://localhost:9200"], min_length=1, description="Node URLs"
    )
    api_key: str | None = Field(default=None, description="Optional API key")
    basic_auth_user: str | None = None
    basic_auth_password: str | None = None
    request_timeout: float = Field(
        default=10.0, gt=0, description="Timeout in seconds for health, refresh and search calls"
    )
    max_retries: int = Field(
        default=2, ge=0, le=10, description="Retries for transport errors on destination calls"
    )
    retry_base_delay: float = Field(default=0.5, ge=0.0, description="Initial backoff in seconds")
    min_health_status: Literal["green", "yellow", "red"] = Field(
        default="yellow", description="Lowest cluster health at which a cycle may run"
    )
    client_logging: bool = Field(
        default=False, description="Enable diagnostic logging of the destination client"
    )


class SourceConfig(BaseModel):
    """Configuration for the relational source."""

    connection_string: str = Field(default=..., description="SQLAlchemy database URL")
    user: str | None = Field(default=None, description="Overrides the URL's username")
    password: str | None = Field(default=None, description="Overrides the URL's password")
    fetch_size: int | None = Field(
        default=None, gt=0, description="Rows buffered per fetch; driver default when unset"
    )
    validate_connection: bool = Field(
        default=False, description="Ping pooled connections before use"
    )
    pool_timeout: float = Field(default=5.0, gt=0, description="Seconds to wait for a connection")


class QueryConfig(BaseModel):
    """Configuration for the source statement."""

    statement: str | None = Field(default=None, description="Inline SQL statement")
    statement_filepath: str | None = Field(
        default=None, description="Path of a file holding the SQL statement"
    )
    parameters: dict[str, Any] = Field(
        default_factory=dict, description="Named parameters bound into the statement"
    )
    fresh_value: int = Field(
        default=0, description="Watermark bound when the destination holds no data yet"
    )


class ScheduleConfig(BaseModel):
    """Configuration for when cycles run."""

    expression: str | None = Field(
        default=None,
        description="Cron expression with optional timezone suffix; run once when unset",
    )
    overlap_policy: Literal["drop", "queue"] = Field(
        default="drop", description="What to do with a trigger that fires mid-cycle"
    )
    abort_policy: Literal["skip", "fail"] = Field(
        default="skip", description="skip: keep running on resolver aborts; fail: stop after a limit"
    )
    max_consecutive_aborts: int = Field(
        default=5, ge=1, description="Consecutive aborts tolerated when abort_policy is 'fail'"
    )


class OutputConfig(BaseModel):
    """Configuration for where events go and how they are decorated."""

    sink: Literal["stdout", "queue", "elasticsearch"] = Field(default="stdout")
    type: str | None = Field(default=None, description="Value for the event 'type' field")
    tags: list[str] = Field(default_factory=list, description="Tags added to every event")
    add_field: dict[str, Any] = Field(
        default_factory=dict, description="Static fields added to every event"
    )


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    Loaded from a YAML file by ConfigLoader, or from environment variables with
    the WMSYNC_ prefix (nested keys separated by ``__``).
    """

    model_config = SettingsConfigDict(
        env_prefix="WMSYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    watermark: WatermarkConfig
    source: SourceConfig
    query: QueryConfig
    destination: DestinationConfig = Field(default_factory=DestinationConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
