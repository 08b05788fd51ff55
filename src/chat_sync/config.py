from __future__ import annotations

from datetime import tzinfo
from zoneinfo import ZoneInfo

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    CHAT_API_URL: str = "http://localhost/coc/gsd/"
    CHAT_API_ENDPOINT: str = "fetchMaster.php"
    CHAT_USER_ENDPOINT: str = "user.php"
    HTTP_TIMEOUT_SECONDS: float = 10.0
    # IANA zone of naive backend timestamps; unset means local time
    API_TIMEZONE: str | None = None

    WS_PORT: int = 8080

    RECONNECT_BASE_DELAY_MS: int = 3000
    RECONNECT_MAX_ATTEMPTS: int = 5

    KEEPALIVE_SECONDS: float = 30.0

    HISTORY_POLL_SECONDS: float = 30.0
    ACTIVE_POLL_SECONDS: float = 1.0

    FINGERPRINT_WINDOW_SECONDS: float = 5.0

    LOG_LEVEL: str = "INFO"

    @property
    def api_endpoint_url(self) -> str:
        return f"{self.CHAT_API_URL}{self.CHAT_API_ENDPOINT}"

    @property
    def user_endpoint_url(self) -> str:
        return f"{self.CHAT_API_URL}{self.CHAT_USER_ENDPOINT}"

    @property
    def api_tzinfo(self) -> tzinfo | None:
        return ZoneInfo(self.API_TIMEZONE) if self.API_TIMEZONE else None

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
