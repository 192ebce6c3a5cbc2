from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CPX_HASH_PARAMS = ["secure_hash", "hash"]


def _parse_csv(v: Any, default: List[str]) -> List[str]:
    if v is None or v == "":
        return default.copy()
    if isinstance(v, list):
        return [x for x in v if isinstance(x, str) and x.strip()]
    return [x.strip() for x in str(v).split(",") if x.strip()] or default.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")

    # Store: "mongo" in deployments, "memory" for local runs and tests
    store_backend: str = Field(default="mongo", alias="STORE_BACKEND")
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="postbacks", alias="MONGODB_DB_NAME")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # Internal endpoints (reconciliation); empty disables them
    internal_api_token: str = Field(default="", alias="INTERNAL_API_TOKEN")

    # AdGem (JSON POST webhook, optional HMAC-SHA256 signature header)
    adgem_enabled: bool = Field(default=True, alias="ADGEM_ENABLED")
    adgem_webhook_secret: str = Field(default="", alias="ADGEM_WEBHOOK_SECRET")
    adgem_points_per_unit: float = Field(default=100, alias="ADGEM_POINTS_PER_UNIT")
    adgem_allow_unsigned: bool = Field(default=True, alias="ADGEM_ALLOW_UNSIGNED")
    adgem_signature_header: str = Field(default="X-AdGem-Signature", alias="ADGEM_SIGNATURE_HEADER")
    adgem_max_payout: float = Field(default=10000, alias="ADGEM_MAX_PAYOUT")

    # CPX Research (GET postback, digest of "{trans_id}-{secret}")
    cpx_enabled: bool = Field(default=True, alias="CPX_ENABLED")
    cpx_app_secret: str = Field(default="", alias="CPX_APP_SECRET")
    cpx_points_per_unit: float = Field(default=75, alias="CPX_POINTS_PER_UNIT")
    cpx_hash_algorithm: str = Field(default="md5", alias="CPX_HASH_ALGORITHM")
    cpx_max_payout: float = Field(default=10000, alias="CPX_MAX_PAYOUT")
    cpx_hash_params_raw: str = Field(
        default="secure_hash,hash",
        alias="CPX_HASH_PARAMS",
        description="Comma-separated query parameter names carrying the hash",
    )

    @property
    def cpx_hash_params(self) -> List[str]:
        return _parse_csv(getattr(self, "cpx_hash_params_raw", None), _DEFAULT_CPX_HASH_PARAMS)


@lru_cache
def get_settings() -> Settings:
    return Settings()
