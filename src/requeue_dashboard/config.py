# ReQueue Dashboard - Configuration
#
# Settings come from two places:
#   - environment variables (optionally seeded from a .env file)
#   - a nested options dict, for programmatic embedding
#
# Redis connection parameters are never interpreted here; they are handed
# to the queue engine factory as-is.

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv

from .exceptions import ConfigError

DEFAULT_ENGINE_FACTORY = "requeue:create_queue_manager"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass
class RedisConfig:
    """Connection parameters forwarded verbatim to the engine."""
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None

    def to_engine_options(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "db": self.db,
            "password": self.password,
        }


@dataclass
class RateLimitSettings:
    """Per-IP request throttling (defaults: 1000 requests per 15 minutes)."""
    window_ms: int = 15 * 60 * 1000
    max_requests: int = 1000
    # Key on the first X-Forwarded-For address instead of the socket peer
    trust_proxy: bool = False

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000.0


@dataclass
class FeatureFlags:
    # Inert: no authentication is implemented regardless of value.
    authentication: bool = False
    websocket: bool = True
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)


@dataclass
class DashboardConfig:
    """Top-level dashboard settings."""

    host: str = "0.0.0.0"
    port: int = 3000
    redis: RedisConfig = field(default_factory=RedisConfig)
    features: FeatureFlags = field(default_factory=FeatureFlags)

    # "module:attribute" of the engine factory
    engine_factory: str = DEFAULT_ENGINE_FACTORY

    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    audit_log_dir: Optional[Path] = None
    static_dir: Optional[Path] = None

    # Max engine calls in flight while scanning queues
    fanout_concurrency: int = 8

    # Max undelivered events held per real-time client
    client_outbox_size: int = 256

    def validate(self) -> "DashboardConfig":
        if not 0 <= self.port <= 65535:
            raise ConfigError(f"port must be between 0 and 65535, got {self.port}")
        rl = self.features.rate_limit
        if rl.window_ms <= 0:
            raise ConfigError(f"rateLimit.windowMs must be positive, got {rl.window_ms}")
        if rl.max_requests < 1:
            raise ConfigError(f"rateLimit.max must be at least 1, got {rl.max_requests}")
        if self.fanout_concurrency < 1:
            raise ConfigError(
                f"fanout_concurrency must be at least 1, got {self.fanout_concurrency}"
            )
        if self.client_outbox_size < 1:
            raise ConfigError(
                f"client_outbox_size must be at least 1, got {self.client_outbox_size}"
            )
        if ":" not in self.engine_factory and "." not in self.engine_factory:
            raise ConfigError(
                f"engine factory must look like 'module:attribute', got {self.engine_factory!r}"
            )
        return self

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        dotenv_path: Optional[Path] = None,
    ) -> "DashboardConfig":
        """Build config from environment variables.

        When ``environ`` is omitted, a ``.env`` file is loaded first (existing
        variables win) and ``os.environ`` is read.
        """
        if environ is None:
            load_dotenv(dotenv_path=dotenv_path, override=False)
            environ = os.environ

        def get(name: str, default: Optional[str] = None) -> Optional[str]:
            value = environ.get(name)
            return default if value is None else value

        rate_limit = RateLimitSettings(
            window_ms=_parse_int("RATE_LIMIT_WINDOW_MS", get("RATE_LIMIT_WINDOW_MS"), 15 * 60 * 1000),
            max_requests=_parse_int("RATE_LIMIT_MAX", get("RATE_LIMIT_MAX"), 1000),
            trust_proxy=_parse_bool("TRUST_PROXY", get("TRUST_PROXY"), False),
        )
        features = FeatureFlags(
            authentication=_parse_bool("DASHBOARD_AUTHENTICATION", get("DASHBOARD_AUTHENTICATION"), False),
            websocket=_parse_bool("DASHBOARD_WEBSOCKET", get("DASHBOARD_WEBSOCKET"), True),
            rate_limit=rate_limit,
        )
        redis = RedisConfig(
            host=get("REDIS_HOST", "localhost"),
            port=_parse_int("REDIS_PORT", get("REDIS_PORT"), 6379),
            db=_parse_int("REDIS_DB", get("REDIS_DB"), 0),
            password=get("REDIS_PASSWORD") or None,
        )

        origins = get("CORS_ORIGINS")
        audit_dir = get("AUDIT_LOG_DIR")
        static_dir = get("STATIC_DIR")

        return cls(
            host=get("HOST", "0.0.0.0"),
            port=_parse_int("PORT", get("PORT"), 3000),
            redis=redis,
            features=features,
            engine_factory=get("REQUEUE_ENGINE", DEFAULT_ENGINE_FACTORY),
            cors_origins=_parse_list(origins) if origins else ["*"],
            log_level=get("LOG_LEVEL", "INFO").upper(),
            audit_log_dir=Path(audit_dir) if audit_dir else None,
            static_dir=Path(static_dir) if static_dir else None,
            fanout_concurrency=_parse_int("FANOUT_CONCURRENCY", get("FANOUT_CONCURRENCY"), 8),
            client_outbox_size=_parse_int("CLIENT_OUTBOX_SIZE", get("CLIENT_OUTBOX_SIZE"), 256),
        ).validate()

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None) -> "DashboardConfig":
        """Build config from a nested options dict.

        Usage:
            DashboardConfig.from_options({
                "port": 3002,
                "redis": {"host": "redis.example.com", "db": 1},
                "features": {"websocket": True, "rateLimit": {"windowMs": 300000, "max": 500}},
            })
        """
        options = dict(options or {})
        redis_opts = dict(options.get("redis") or {})
        feature_opts = dict(options.get("features") or {})
        rate_opts = dict(feature_opts.get("rateLimit") or {})

        # Missing or zero values fall back to the defaults
        rate_limit = RateLimitSettings(
            window_ms=int(rate_opts.get("windowMs") or 15 * 60 * 1000),
            max_requests=int(rate_opts.get("max") or 1000),
            trust_proxy=bool(rate_opts.get("trustProxy", False)),
        )
        features = FeatureFlags(
            authentication=bool(feature_opts.get("authentication", False)),
            websocket=bool(feature_opts.get("websocket", True)),
            rate_limit=rate_limit,
        )
        redis = RedisConfig(
            host=redis_opts.get("host", "localhost"),
            port=int(redis_opts.get("port", 6379)),
            db=int(redis_opts.get("db", 0)),
            password=redis_opts.get("password"),
        )

        kwargs: Dict[str, Any] = {
            "port": int(options.get("port", 3000)),
            "redis": redis,
            "features": features,
        }
        for key in ("host", "engine_factory", "cors_origins", "log_level",
                    "fanout_concurrency", "client_outbox_size"):
            if key in options:
                kwargs[key] = options[key]
        for key in ("audit_log_dir", "static_dir"):
            if options.get(key):
                kwargs[key] = Path(options[key])

        return cls(**kwargs).validate()


def _parse_int(name: str, raw: Optional[str], default: int) -> int:
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _parse_bool(name: str, raw: Optional[str], default: bool) -> bool:
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _parse_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]
