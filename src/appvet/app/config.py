from __future__ import annotations

from pathlib import Path

from platformdirs import PlatformDirs
from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_NAME = "appvet"


def _default_home() -> Path:
    """Get default home directory using platformdirs."""
    return Path(PlatformDirs(appname=APP_NAME, appauthor=False).user_data_dir)


def _section(*path: str) -> SettingsConfigDict:
    # Standalone sections read APPVET_<SECTION>__ variables, never bare HOME or PORT
    return SettingsConfigDict(env_prefix="APPVET_" + "".join(f"{p.upper()}__" for p in path))


class DirectoryConfig(BaseSettings):
    """Directory configuration with computed paths."""

    model_config = _section("directories")

    home: Path = Field(
        default_factory=_default_home,
        description="Base directory for all appvet data",
    )

    @computed_field
    @property
    def blobs_dir(self) -> Path:
        """Content-addressed blob storage (packages, icons, screenshots)."""
        path = self.home / "blobs"
        path.mkdir(parents=True, exist_ok=True)
        return path

    @computed_field
    @property
    def data_dir(self) -> Path:
        """Directory for the default SQLite database."""
        path = self.home / "data"
        path.mkdir(parents=True, exist_ok=True)
        return path

    @computed_field
    @property
    def logs_dir(self) -> Path:
        """Logs directory for the JSONL service log."""
        path = self.home / "logs"
        path.mkdir(parents=True, exist_ok=True)
        return path


class DatabaseConfig(BaseSettings):
    """Metadata store configuration."""

    model_config = _section("database")

    url: str | None = Field(
        default=None,
        description="SQLAlchemy URL; defaults to a SQLite file in the data directory",
    )

    echo: bool = Field(default=False, description="Echo SQL statements")


class LimitsConfig(BaseSettings):
    """Upload and archive bounds."""

    model_config = _section("limits")

    max_package_bytes: int = Field(
        default=100 * 1024 * 1024,
        description="Maximum uploaded package size",
    )

    max_entries: int = Field(default=10_000, description="Maximum archive entry count")

    max_uncompressed_bytes: int = Field(
        default=512 * 1024 * 1024,
        description="Maximum declared total uncompressed size",
    )

    max_compression_ratio: float = Field(
        default=200.0,
        description="Maximum per-entry compression ratio for entries of 1 MiB or more",
    )

    max_asset_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Icons and screenshots larger than this are skipped",
    )


class RulesConfig(BaseSettings):
    """Heuristic rule configuration."""

    model_config = _section("rules")

    known_bad_certs_path: Path | None = Field(
        default=None,
        description="JSON list of SHA-256 digests of known malicious signing certificates",
    )

    entropy_threshold: float = Field(default=7.5, description="Flag packages above this entropy")

    permission_threshold: int = Field(
        default=5,
        description="Flag manifests requesting more dangerous permissions than this",
    )

    max_screenshots: int = Field(default=5, description="Screenshots extracted per package")


class ClamAVConfig(BaseSettings):
    model_config = _section("engines", "clamav")

    unix_socket: str | None = Field(default=None, description="clamd unix socket path")
    host: str | None = Field(default="127.0.0.1", description="clamd TCP host")
    port: int = Field(default=3310, description="clamd TCP port")
    timeout: float | None = Field(default=None, description="Per-scan timeout override")


class VirusTotalConfig(BaseSettings):
    model_config = _section("engines", "virustotal")

    api_key: str | None = Field(default=None, description="VirusTotal API key")
    base_url: str = Field(
        default="https://www.virustotal.com/api/v3",
        description="VirusTotal API base URL",
    )
    timeout: float | None = Field(default=None, description="Per-lookup timeout override")


class YaraConfig(BaseSettings):
    model_config = _section("engines", "yara")

    rules_path: Path | None = Field(
        default=None,
        description="YARA rules file; the built-in Suspicious_APK rule is used if unset",
    )
    timeout: float | None = Field(default=None, description="Per-match timeout override")


class EnginesConfig(BaseSettings):
    """Scan engine selection and settings."""

    model_config = _section("engines")

    enabled: list[str] = Field(
        default_factory=lambda: ["clamav", "virustotal", "yara", "heuristic"],
        description="Engines to run, in verdict order",
    )

    default_timeout: float = Field(default=30.0, description="Per-engine timeout in seconds")

    clamav: ClamAVConfig = Field(default_factory=ClamAVConfig)
    virustotal: VirusTotalConfig = Field(default_factory=VirusTotalConfig)
    yara: YaraConfig = Field(default_factory=YaraConfig)


class ScanConfig(BaseSettings):
    """Scan queue and verdict policy."""

    model_config = _section("scan")

    min_responding_engines: int = Field(
        default=1,
        description="Engines that must answer for a clean verdict to verify a package (0 = fail-open)",
    )

    workers: int = Field(default=2, description="Scan worker threads")
    max_attempts: int = Field(default=3, description="Delivery attempts per scan request")
    retry_delay: float = Field(default=1.0, description="Seconds between delivery attempts")
    sweep_interval: float = Field(
        default=60.0,
        description="Seconds between sweeps for unscanned packages (0 disables)",
    )


class NotifyConfig(BaseSettings):
    """Admin alerting."""

    model_config = _section("notify")

    webhook_url: str | None = Field(default=None, description="Optional webhook for malware alerts")
    timeout: float = Field(default=10.0, description="Webhook timeout in seconds")
    priority: str = Field(default="high", description="Priority recorded on alerts")


class ApiConfig(BaseSettings):
    """HTTP intake API."""

    model_config = _section("api")

    public_base_url: str | None = Field(
        default=None,
        description="Base URL used to build icon URLs in intake responses",
    )
    host: str = Field(default="127.0.0.1", description="Bind host")
    port: int = Field(default=8000, description="Bind port")


class LoggingConfig(BaseSettings):
    model_config = _section("logging")

    logger_name: str = Field(default=APP_NAME, description="Logger name")
    level: str = Field(default="INFO", description="Log level")
    console_output: bool = Field(default=False, description="Also log to the console")
    max_bytes: int = Field(default=10 * 1024 * 1024, description="Rotate appvet.jsonl at this size (0 disables)")
    backup_count: int = Field(default=5, description="Rotated log files to keep")


class AppConfig(BaseSettings):
    """Root application configuration.

    All configuration is loaded from environment variables with APPVET_ prefix.
    Use double underscore for nested config: APPVET_ENGINES__VIRUSTOTAL__API_KEY

    Example env vars:
        export APPVET_DIRECTORIES__HOME=/srv/appvet
        export APPVET_DATABASE__URL=postgresql+psycopg://appvet@db/appvet
        export APPVET_ENGINES__ENABLED='["clamav","yara","heuristic"]'
        export APPVET_ENGINES__CLAMAV__UNIX_SOCKET=/run/clamav/clamd.ctl
        export APPVET_ENGINES__VIRUSTOTAL__API_KEY=xxxxxxxx
        export APPVET_SCAN__MIN_RESPONDING_ENGINES=2
        export APPVET_NOTIFY__WEBHOOK_URL=https://hooks.example.com/appvet
    """

    model_config = SettingsConfigDict(
        env_prefix="APPVET_",
        env_nested_delimiter="__",
        frozen=True,
        extra="forbid",
    )

    directories: DirectoryConfig = Field(default_factory=DirectoryConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    rules: RulesConfig = Field(default_factory=RulesConfig)
    engines: EnginesConfig = Field(default_factory=EnginesConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)
    notify: NotifyConfig = Field(default_factory=NotifyConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @computed_field
    @property
    def database_url(self) -> str:
        """Effective SQLAlchemy URL."""
        if self.database.url:
            return self.database.url
        return f"sqlite:///{self.directories.data_dir / 'appvet.db'}"
