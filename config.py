import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        insights_enabled: bool = True,
        min_analysis_interval_secs: float = 300,
        max_cache_size: int = 1000,
        batch_size: int = 100,
        batch_threshold: int = 500,
        batch_pause_secs: float = 0.01,
        max_parallel_tasks: int = 4,
        pattern_ttl_secs: float = 3600,
        anomaly_ttl_secs: float = 3600,
        health_ttl_secs: float = 300,
        cleanup_interval_secs: float = 300,
        auto_refresh_interval_secs: float = 30,
        recent_change_window_secs: float = 300,
        max_session_insights: int = 30,
        insight_retention_days: int = 30,
    ) -> None:
        if max_parallel_tasks < 1:
            raise ValueError("max_parallel_tasks must be at least 1")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if max_cache_size < 1:
            raise ValueError("max_cache_size must be at least 1")
        self.database_url = database_url
        self.timezone = timezone
        self.insights_enabled = insights_enabled
        self.min_analysis_interval_secs = min_analysis_interval_secs
        self.max_cache_size = max_cache_size
        self.batch_size = batch_size
        self.batch_threshold = batch_threshold
        self.batch_pause_secs = batch_pause_secs
        self.max_parallel_tasks = max_parallel_tasks
        self.pattern_ttl_secs = pattern_ttl_secs
        self.anomaly_ttl_secs = anomaly_ttl_secs
        self.health_ttl_secs = health_ttl_secs
        self.cleanup_interval_secs = cleanup_interval_secs
        self.auto_refresh_interval_secs = auto_refresh_interval_secs
        self.recent_change_window_secs = recent_change_window_secs
        self.max_session_insights = max_session_insights
        self.insight_retention_days = insight_retention_days


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("SMARTBUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean for {name}: {raw!r}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "smartbudget.db"
    database_url = os.getenv("SMARTBUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("SMARTBUDGET_TIMEZONE", "Europe/Berlin")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        insights_enabled=_env_bool("SMARTBUDGET_INSIGHTS_ENABLED", True),
        min_analysis_interval_secs=float(
            os.getenv("SMARTBUDGET_MIN_ANALYSIS_INTERVAL_SECS", "300")
        ),
        max_cache_size=int(os.getenv("SMARTBUDGET_MAX_CACHE_SIZE", "1000")),
        batch_size=int(os.getenv("SMARTBUDGET_BATCH_SIZE", "100")),
        batch_threshold=int(os.getenv("SMARTBUDGET_BATCH_THRESHOLD", "500")),
        batch_pause_secs=float(os.getenv("SMARTBUDGET_BATCH_PAUSE_SECS", "0.01")),
        max_parallel_tasks=int(os.getenv("SMARTBUDGET_MAX_PARALLEL_TASKS", "4")),
        pattern_ttl_secs=float(os.getenv("SMARTBUDGET_PATTERN_TTL_SECS", "3600")),
        anomaly_ttl_secs=float(os.getenv("SMARTBUDGET_ANOMALY_TTL_SECS", "3600")),
        health_ttl_secs=float(os.getenv("SMARTBUDGET_HEALTH_TTL_SECS", "300")),
        cleanup_interval_secs=float(
            os.getenv("SMARTBUDGET_CLEANUP_INTERVAL_SECS", "300")
        ),
        auto_refresh_interval_secs=float(
            os.getenv("SMARTBUDGET_AUTO_REFRESH_INTERVAL_SECS", "30")
        ),
        recent_change_window_secs=float(
            os.getenv("SMARTBUDGET_RECENT_CHANGE_WINDOW_SECS", "300")
        ),
        max_session_insights=int(os.getenv("SMARTBUDGET_MAX_SESSION_INSIGHTS", "30")),
        insight_retention_days=int(
            os.getenv("SMARTBUDGET_INSIGHT_RETENTION_DAYS", "30")
        ),
    )
