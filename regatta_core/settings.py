from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RegattaSettings(BaseSettings):
    # Clock display refresh while the race is running
    tick_interval_ms: int = Field(100, ge=10, le=5000)
    # Bursts of change notifications inside this window trigger one re-fetch
    reconcile_debounce_ms: int = Field(1000, ge=0, le=60000)
    max_bow_number: int = Field(9999, ge=1)

    model_config = SettingsConfigDict(env_prefix="REGATTA_", env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> RegattaSettings:
    return RegattaSettings()
