# src/config/settings.py

"""Central configuration for the sourcing search engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the sourcing search engine."""

    # --- Requests ---
    REQUEST_TIMEOUT: int = 15           # Seconds before a request times out
    MAX_ATTEMPTS: int = 3               # Attempts per source per search
    BATCH_MAX_ATTEMPTS: int = 2         # Attempts per source in batch mode
    BACKOFF_BASE_DELAY: float = 1.0     # First retry delay (secs)
    BACKOFF_MAX_DELAY: float = 10.0     # Cap for exponential backoff
    SLOW_SOURCE_MS: float = 5000.0      # Health check "slow" threshold

    # --- Results ---
    DEFAULT_RESULT_LIMIT: int = 10
    MAX_RESULT_LIMIT: int = 50

    # --- Credentials ---
    TOKEN_SAFETY_MARGIN: int = 60       # Shared-cache TTL = expires_in - this
    DEFAULT_TOKEN_TTL: int = 3600       # When upstream omits expires_in
    LOCAL_TOKEN_TTL: int = 300          # In-process copy of a shared token
    REDIS_URL: str = os.getenv("REDIS_URL", "")
    REDIS_KEY_PREFIX: str = "sourcing:token:"

    SHOPIFY_MCP_CLIENT_ID: str = os.getenv("SHOPIFY_MCP_CLIENT_ID", "")
    SHOPIFY_MCP_CLIENT_SECRET: str = os.getenv(
        "SHOPIFY_MCP_CLIENT_SECRET", ""
    )
    SHOPIFY_MCP_ENDPOINT: str = os.getenv(
        "SHOPIFY_MCP_ENDPOINT",
        "https://discover.shopifyapps.com/global/mcp",
    )
    SHOPIFY_TOKEN_ENDPOINT: str = os.getenv(
        "SHOPIFY_TOKEN_ENDPOINT",
        "https://api.shopify.com/auth/access_token",
    )

    CJ_API_KEY: str = os.getenv("CJ_API_KEY", "")
    CJ_API_URL: str = os.getenv(
        "CJ_API_URL",
        "https://developers.cjdropshipping.com/api2.0/v1",
    )
    CJ_REFRESH_TOKEN_TTL: int = 180 * 24 * 3600

    ALIBABA_CLIENT_ID: str = os.getenv("ALIBABA_CLIENT_ID", "")
    ALIBABA_CLIENT_SECRET: str = os.getenv("ALIBABA_CLIENT_SECRET", "")
    ALIBABA_API_URL: str = os.getenv(
        "ALIBABA_API_URL", "https://api.alibaba.com"
    )

    MADE_IN_CHINA_URL: str = os.getenv(
        "MADE_IN_CHINA_URL", "https://www.made-in-china.com"
    )

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "en-US,en;q=0.9",
        "sec-ch-ua": (
            '"Google Chrome";v="131", '
            '"Chromium";v="131", '
            '"Not_A Brand";v="24"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
        "Upgrade-Insecure-Requests": "1",
    }
    JSON_HEADERS: dict[str, str] = {
        "Accept": "application/json",
        "Content-Type": "application/json",
    }
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "verify you are human",
        "unusual traffic",
        "slide to verify",
    ]

    # --- Logging ---
    CONSOLE_LOG_LEVEL: str = os.getenv("LOG_LEVEL", "WARNING")

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    LOGS_DIR: Path = BASE_DIR / "logs"

    # --- Sources ---
    AVAILABLE_SOURCES: list[dict[str, str]] = [
        {
            "id": "alibaba",
            "label": "Alibaba",
            "connector": "src.connectors.alibaba_connector.AlibabaConnector",
        },
        {
            "id": "made-in-china",
            "label": "Made-in-China",
            "connector": (
                "src.connectors.made_in_china_connector."
                "MadeInChinaConnector"
            ),
        },
        {
            "id": "cj-dropshipping",
            "label": "CJ Dropshipping",
            "connector": (
                "src.connectors.cj_dropshipping_connector."
                "CJDropshippingConnector"
            ),
        },
        {
            "id": "shopify-global",
            "label": "Shopify Global",
            "connector": (
                "src.connectors.shopify_mcp_connector."
                "ShopifyGlobalConnector"
            ),
        },
    ]

    @classmethod
    def source_ids(cls) -> list[str]:
        """Return the registered source ids in registry order."""
        return [s["id"] for s in cls.AVAILABLE_SOURCES]
