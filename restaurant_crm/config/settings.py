"""
Restaurant CRM - Customer Tagging Engine
Centralized Configuration Management

Pydantic settings with environment variable support. Every tagging
threshold lives here as named policy so the rules module never carries
magic numbers.
"""

from functools import lru_cache
from typing import Optional, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="restaurant_crm", description="Database name")
    user: str = Field(default="restaurant_crm", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, description="Full async URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class RedisSettings(BaseSettings):
    """Redis Cache Configuration"""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[SecretStr] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    max_connections: int = Field(default=50, description="Max connections")
    socket_timeout: int = Field(default=5, description="Socket timeout in seconds")
    decode_responses: bool = Field(default=True, description="Decode responses to strings")
    url: Optional[str] = Field(default=None, description="Redis URL (overrides host/port)")
    summary_ttl_seconds: int = Field(default=600, description="TTL for cached customer summaries")

    def get_url(self) -> str:
        """Redis connection URL - uses REDIS_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class SecuritySettings(BaseSettings):
    """CORS Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class TaggingSettings(BaseSettings):
    """
    Customer tagging policy.

    Spend bands, visit-gap multiples and behavior shares used by the
    tag rule evaluator and the summary aggregator.
    """

    model_config = SettingsConfigDict(env_prefix="TAGGING_")

    # Spend tags
    spend_strategy: str = Field(default="bands", description="bands or percentile")
    high_spend_threshold: float = Field(default=1000.0, description="AOV at which high_spender starts")
    mid_spend_threshold: float = Field(default=400.0, description="AOV at which mid_spender starts")
    high_spend_percentile: float = Field(default=2 / 3, description="AOV quantile for high_spender")
    mid_spend_percentile: float = Field(default=1 / 3, description="AOV quantile for mid_spender")

    # Activity tags
    at_risk_gap_multiplier: float = Field(default=2.0, description="Multiple of personal gap before at_risk")
    dormant_gap_multiplier: float = Field(default=4.0, description="Multiple of personal gap before dormant")
    dormant_after_days: int = Field(default=90, description="Absolute days of absence before dormant")
    new_customer_gap_fraction: float = Field(default=0.5, description="Fraction of restaurant gap a first visit counts as new")
    default_visit_gap_days: float = Field(default=30.0, description="Gap used when no personal or restaurant gap exists")

    # Behavior tags
    combo_order_share: float = Field(default=0.5, description="Share of orders with a combo item")
    min_combo_orders: int = Field(default=3, description="Minimum orders with a combo item")
    category_loyalty_share: float = Field(default=0.6, description="Share of category occurrences in the top category")
    large_party_guest_avg: float = Field(default=3.0, description="Average guest estimate for large_party")
    weekend_share: float = Field(default=0.7, description="Share of orders on Saturday or Sunday")
    daypart_share: float = Field(default=0.7, description="Share of orders in the lunch or dinner window")
    lunch_hours: List[int] = Field(default=[11, 15], description="Inclusive lunch hour window")
    dinner_hours: List[int] = Field(default=[18, 22], description="Inclusive dinner hour window")
    timezone: str = Field(default="UTC", description="IANA zone the weekend and daypart rules read order times in")
    price_sensitive_aov: float = Field(default=200.0, description="AOV below which price_sensitive applies")
    premium_seeker_aov: float = Field(default=800.0, description="AOV above which premium_seeker applies")
    frequent_visitor_percentile: float = Field(default=0.8, description="Visit-count quantile for frequent_visitor")
    frequent_visitor_min_visits: int = Field(default=5, description="Minimum visits for frequent_visitor")

    # Summary
    active_window_days: int = Field(default=30, description="Days since last visit counted as recently active")
    top_ltv_fraction: float = Field(default=0.1, description="Fraction of customers listed as top spenders")
    top_behavior_tags: int = Field(default=5, description="Behavior tags listed as most common")

    @field_validator("spend_strategy")
    @classmethod
    def validate_strategy(cls, v: str) -> str:
        """Validate spend strategy value"""
        allowed = ["bands", "percentile"]
        if v.lower() not in allowed:
            raise ValueError(f"Spend strategy must be one of: {allowed}")
        return v.lower()

    @field_validator(
        "combo_order_share",
        "category_loyalty_share",
        "weekend_share",
        "daypart_share",
        "high_spend_percentile",
        "mid_spend_percentile",
        "frequent_visitor_percentile",
        "top_ltv_fraction",
    )
    @classmethod
    def validate_share(cls, v: float) -> float:
        """Shares and quantiles live in (0, 1]"""
        if not 0 < v <= 1:
            raise ValueError("Share must be within (0, 1]")
        return v

    @field_validator("lunch_hours", "dinner_hours")
    @classmethod
    def validate_hours(cls, v: List[int]) -> List[int]:
        """Hour windows are [start, end] within a day"""
        if len(v) != 2 or not 0 <= v[0] <= v[1] <= 23:
            raise ValueError("Hour window must be [start, end] with 0 <= start <= end <= 23")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @model_validator(mode="after")
    def validate_ordering(self) -> "TaggingSettings":
        """Bands and multiples must be internally consistent"""
        if self.mid_spend_threshold >= self.high_spend_threshold:
            raise ValueError("mid_spend_threshold must be below high_spend_threshold")
        if self.mid_spend_percentile >= self.high_spend_percentile:
            raise ValueError("mid_spend_percentile must be below high_spend_percentile")
        if self.dormant_gap_multiplier <= self.at_risk_gap_multiplier:
            raise ValueError("dormant_gap_multiplier must exceed at_risk_gap_multiplier")
        if self.price_sensitive_aov >= self.premium_seeker_aov:
            raise ValueError("price_sensitive_aov must be below premium_seeker_aov")
        return self


class MessagingSettings(BaseSettings):
    """Outreach message configuration"""

    model_config = SettingsConfigDict(env_prefix="MESSAGING_")

    restaurant_name: str = Field(default="our restaurant", description="Name used in message sign-offs")
    sign_off: str = Field(default="The Team", description="Message signature")
    standard_discount: int = Field(default=20, description="Discount percent for standard offers")
    high_discount: int = Field(default=30, description="Discount percent for discount-sensitive customers")
    dormant_discount: int = Field(default=25, description="Discount percent for dormant customers")
    favorite_items_shown: int = Field(default=3, description="Favorite items mentioned in a message")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="restaurant-crm", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    tagging: TaggingSettings = Field(default_factory=TaggingSettings)
    messaging: MessagingSettings = Field(default_factory=MessagingSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Development creates missing tables on startup"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """Settings are read from the environment once per process."""
    return Settings()
