"""Pydantic models for dhtcrawl configuration."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator

DEFAULT_BOOTSTRAP_NODES = [
    "router.bittorrent.com:6881",
    "router.utorrent.com:6881",
    "dht.transmissionbt.com:6881",
]


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CrawlerConfig(BaseModel):
    """DHT crawl job configuration."""

    bind_ip: str = Field(default="0.0.0.0", description="Local UDP bind address")  # nosec B104
    port: int = Field(
        default=6881,
        ge=0,
        le=65535,
        description="Local UDP port (0 picks an ephemeral port)",
    )
    crawl_ttl: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds a crawl job runs before its result is reported",
    )
    bootstrap_nodes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BOOTSTRAP_NODES),
        min_length=1,
        description="Well-known DHT entry nodes (host:port)",
    )
    bootstrap_rounds: int = Field(
        default=6,
        ge=1,
        le=100,
        description="Times every bootstrap node is queried when a job starts",
    )
    bootstrap_interval: float = Field(
        default=0.001,
        ge=0.0,
        le=60.0,
        description="Seconds between bootstrap rounds",
    )
    transaction_id_bits: int = Field(
        default=16,
        ge=1,
        le=16,
        description="Size of the random transaction id space in bits",
    )
    node_id_rotation_interval: float = Field(
        default=10.0,
        gt=0.0,
        description="Seconds between regenerations of the local node id",
    )
    max_queries_per_job: int = Field(
        default=10000,
        ge=1,
        description="Upper bound on get_peers queries dispatched for one job",
    )
    cleanup_interval: float = Field(
        default=30.0,
        gt=0.0,
        description="Seconds between sweeps of expired transactions",
    )

    @field_validator("bootstrap_nodes")
    @classmethod
    def _validate_bootstrap_nodes(cls, value: list[str]) -> list[str]:
        for node in value:
            host, sep, port = node.rpartition(":")
            # isdigit() alone admits non-ASCII digits int() rejects
            valid_port = port.isascii() and port.isdigit() and 0 < int(port) < 65536
            if not sep or not host or not valid_port:
                msg = f"Invalid bootstrap node {node!r} (expected host:port)"
                raise ValueError(msg)
        return value


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Log level")
    log_file: str | None = Field(default=None, description="Log file path")
    structured_logging: bool = Field(
        default=False,
        description="Write JSON records to the log file",
    )
    log_correlation_id: bool = Field(
        default=True,
        description="Include correlation IDs",
    )


class Config(BaseModel):
    """Main configuration model."""

    crawler: CrawlerConfig = Field(
        default_factory=CrawlerConfig,
        description="Crawler configuration",
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Observability configuration",
    )
