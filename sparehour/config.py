# config.py
# env settings, read once at startup (dotenv for local dev)

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() not in ["0", "false", "no", ""]


@dataclass(frozen=True)
class Settings:
    amap_key: str = ""
    zhipu_key: str = ""
    zhipu_model: str = "glm-4.5-flash"
    default_city: str = "宜昌"
    # provider timeouts (seconds)
    geo_timeout_s: float = 4.5
    search_timeout_s: float = 8.0
    narrative_timeout_s: float = 15.0
    narrative_cache_ttl_s: int = 600
    intent_model_enabled: bool = False
    frontend_prod: str = ""


def load_settings() -> Settings:
    return Settings(
        amap_key=os.getenv("AMAP_WEB_SERVICE_KEY", ""),
        zhipu_key=os.getenv("ZHIPU_API_KEY", ""),
        zhipu_model=os.getenv("ZHIPU_MODEL", "glm-4.5-flash"),
        default_city=os.getenv("DEFAULT_CITY", "宜昌"),
        geo_timeout_s=float(os.getenv("GEO_TIMEOUT_S", "4.5")),
        search_timeout_s=float(os.getenv("SEARCH_TIMEOUT_S", "8")),
        narrative_timeout_s=float(os.getenv("NARRATIVE_TIMEOUT_S", "15")),
        narrative_cache_ttl_s=int(os.getenv("NARRATIVE_CACHE_TTL_S", "600")),
        intent_model_enabled=_flag("INTENT_MODEL_ENABLE"),
        frontend_prod=os.getenv("FRONTEND_PROD", ""),
    )
