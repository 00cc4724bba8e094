"""Feed configuration."""

import logging

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)
load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    # Upstream bar-history endpoint (GET ?symbol=&resolution=&from=&to=)
    bar_history_url: str = Field(
        default="http://localhost:8000/api/tradingview/bars",
        alias="BAR_HISTORY_URL",
    )
    http_timeout_seconds: float = Field(default=10.0, alias="HTTP_TIMEOUT_SECONDS")

    # Timer cadence per subscription
    single_poll_interval: float = Field(default=5.0, alias="SINGLE_POLL_INTERVAL")
    basket_poll_interval: float = Field(default=15.0, alias="BASKET_POLL_INTERVAL")

    # Widget handshake
    on_ready_delay: float = Field(default=1.0, alias="ON_READY_DELAY")
    basket_price_scale: int = Field(default=10000, alias="BASKET_PRICE_SCALE")

    # Re-send the live-price bar after these delays so the chart redraws it
    live_price_echo_delays: str = Field(default="0.1,0.5", alias="LIVE_PRICE_ECHO_DELAYS")

    # False: a basket tick is skipped while the basket is unchanged since that
    # subscription's last refresh. True: every tick re-fetches the legs.
    basket_refresh_every_tick: bool = Field(default=False, alias="BASKET_REFRESH_EVERY_TICK")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("single_poll_interval", "basket_poll_interval")
    @classmethod
    def _positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("poll interval must be > 0")
        return value

    @property
    def echo_delays(self) -> list[float]:
        delays = []
        for part in self.live_price_echo_delays.split(","):
            part = part.strip()
            if not part:
                continue
            try:
                delay = float(part)
            except ValueError:
                logger.warning("[CONFIG] Ignoring bad echo delay %r", part)
                continue
            if delay >= 0:
                delays.append(delay)
        return delays


settings = Settings()
