from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "Site Scan Pipeline"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = True
    FRONTEND_URL: str = "*"
    LOG_DIR: str = "logs"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # ── Database ────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./scan_pipeline.db"

    # Calendar day for idempotency keys is taken in this zone
    SCAN_TIMEZONE: str = "UTC"

    # ── Crawl ───────────────────────────────────
    USER_AGENT: str = "SiteScanBot/1.0 (+https://example.com/bot)"
    CRAWL_MAX_PAGES_LIGHT: int = 10
    CRAWL_MAX_PAGES_FULL: int = 25
    CRAWL_CONCURRENCY: int = 3
    CRAWL_TIMEOUT_SECONDS: float = 10.0

    # ── Performance (PageSpeed Insights) ────────
    GOOGLE_PAGESPEED_API_KEY: Optional[str] = None
    PAGESPEED_API_URL: str = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
    PAGESPEED_TIMEOUT_SECONDS: float = 20.0

    # ── Rank checking (SerpApi) ─────────────────
    SERPAPI_API_KEY: Optional[str] = None
    SERPAPI_BASE_URL: str = "https://serpapi.com/search"
    RANK_CHECK_DEADLINE_MS: int = 45_000
    RANK_CHECK_DELAY_MS: int = 1_500
    RANK_QUERY_TIMEOUT_SECONDS: float = 30.0

    # ── Keywords ────────────────────────────────
    KEYWORD_CAP_LIGHT: int = 15
    KEYWORD_CAP_FULL: int = 25

    # ── Competitive analysis ────────────────────
    COMPETITIVE_MAX_KEYWORDS: int = 5
    COMPETITIVE_FETCH_TIMEOUT_SECONDS: float = 5.0

    # ── AI readiness ────────────────────────────
    AI_READINESS_ENABLED: bool = True

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    def crawl_max_pages(self, mode: str) -> int:
        return self.CRAWL_MAX_PAGES_FULL if mode == "full" else self.CRAWL_MAX_PAGES_LIGHT

    def keyword_cap(self, mode: str) -> int:
        return self.KEYWORD_CAP_FULL if mode == "full" else self.KEYWORD_CAP_LIGHT


settings = Settings()
