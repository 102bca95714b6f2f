from dataclasses import dataclass
from datetime import timedelta

from duejobs.domain.errors import ConfigurationError
from duejobs.settings import Settings, settings as default_settings

@dataclass(frozen=True)
class EngineConfig:
    bucket_width_seconds: int = 300
    partition_prefix: str = "j"
    key_separator: str = "#"

    lookback_seconds: int = 900
    claim_ttl_seconds: int = 120
    call_timeout_seconds: float = 5.0
    tick_deadline_seconds: float = 50.0
    tick_concurrency: int = 8
    scan_page_size: int = 100
    max_jobs_per_tick: int = 1000

    publish_max_attempts: int = 3
    publish_base_delay_seconds: float = 0.2
    publish_max_delay_seconds: float = 5.0
    store_max_attempts: int = 3
    store_base_delay_seconds: float = 0.1

    @property
    def lookback(self) -> timedelta:
        return timedelta(seconds=self.lookback_seconds)

    @property
    def claim_ttl(self) -> timedelta:
        return timedelta(seconds=self.claim_ttl_seconds)

    @classmethod
    def from_settings(cls, s: Settings = default_settings) -> "EngineConfig":
        return cls(
            bucket_width_seconds=s.BUCKET_WIDTH_SECONDS,
            partition_prefix=s.PARTITION_PREFIX,
            key_separator=s.KEY_SEPARATOR,
            lookback_seconds=s.LOOKBACK_SECONDS,
            claim_ttl_seconds=s.CLAIM_TTL_SECONDS,
            call_timeout_seconds=s.CALL_TIMEOUT_SECONDS,
            tick_deadline_seconds=s.TICK_DEADLINE_SECONDS,
            tick_concurrency=s.TICK_CONCURRENCY,
            scan_page_size=s.SCAN_PAGE_SIZE,
            max_jobs_per_tick=s.MAX_JOBS_PER_TICK,
            publish_max_attempts=s.PUBLISH_MAX_ATTEMPTS,
            publish_base_delay_seconds=s.PUBLISH_BASE_DELAY_SECONDS,
            publish_max_delay_seconds=s.PUBLISH_MAX_DELAY_SECONDS,
            store_max_attempts=s.STORE_MAX_ATTEMPTS,
            store_base_delay_seconds=s.STORE_BASE_DELAY_SECONDS,
        )

    def validate(self) -> "EngineConfig":
        # Partition keys are rendered to the minute
        if self.bucket_width_seconds <= 0 or self.bucket_width_seconds % 60:
            raise ConfigurationError("bucket_width_seconds must be a positive multiple of 60")
        if len(self.key_separator) != 1:
            raise ConfigurationError("key_separator must be a single character")
        if self.lookback_seconds < self.bucket_width_seconds:
            raise ConfigurationError("lookback_seconds must cover at least one bucket width")
        if self.claim_ttl_seconds <= 0:
            raise ConfigurationError("claim_ttl_seconds must be positive")
        if self.tick_concurrency < 1:
            raise ConfigurationError("tick_concurrency must be at least 1")
        if self.publish_max_attempts < 1 or self.store_max_attempts < 1:
            raise ConfigurationError("retry budgets must allow at least one attempt")
        if self.scan_page_size < 1 or self.max_jobs_per_tick < 1:
            raise ConfigurationError("scan_page_size and max_jobs_per_tick must be positive")
        return self
