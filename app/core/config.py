import os
from typing import List


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings:
    # Fetching
    REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "15"))
    # Overall deadline for one /fetch call across all strategies
    REQUEST_DEADLINE: float = float(os.getenv("REQUEST_DEADLINE", "120"))
    MAX_CONTENT_BYTES: int = int(os.getenv("MAX_CONTENT_BYTES", str(5 * 1024 * 1024)))
    MAX_REDIRECTS: int = int(os.getenv("MAX_REDIRECTS", "5"))

    USER_AGENT: str = os.getenv(
        "USER_AGENT",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36",
    )
    MOBILE_USER_AGENT: str = os.getenv(
        "MOBILE_USER_AGENT",
        "Mozilla/5.0 (iPhone; CPU iPhone OS 17_5 like Mac OS X) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/17.5 Mobile/15E148 Safari/604.1",
    )
    MINIMAL_USER_AGENT: str = os.getenv("MINIMAL_USER_AGENT", "curl/8.5.0")

    # Skips certificate validation, keep off unless the operator opts in
    ALLOW_INSECURE_TRANSPORT: bool = _env_bool("ALLOW_INSECURE_TRANSPORT", "0")
    ENABLED_STRATEGIES: str = os.getenv("ENABLED_STRATEGIES", "direct,mobile,insecure,rendered,minimal")

    # Playwright / JS rendering
    PLAYWRIGHT_HEADLESS: bool = _env_bool("PLAYWRIGHT_HEADLESS", "1")
    RENDER_SETTLE_MS: int = int(os.getenv("RENDER_SETTLE_MS", "0"))

    # Rate limiting
    RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "20"))
    RATE_LIMIT_WINDOW_SECONDS: float = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

    MAX_BATCH_URLS: int = int(os.getenv("MAX_BATCH_URLS", "5"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def enabled_strategies(self) -> List[str]:
        return [name.strip() for name in self.ENABLED_STRATEGIES.split(",") if name.strip()]


settings = Settings()
