# ----------------------------------------------------------------
# Import configuration variables to be used throughout the project
# ----------------------------------------------------------------
import os
import json as _json
from dotenv import load_dotenv

# Load .env (allow container env to override file values)
load_dotenv(override=True)


def _get_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "on", "y"}


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        return default


def _get_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [p.strip() for p in raw.split(",") if p.strip()]


def _get_json_map(name: str, default: dict | None = None) -> dict:
    raw = os.getenv(name, "")
    if not raw:
        return default or {}
    try:
        return _json.loads(raw)
    except ValueError:
        return default or {}


class Settings:
    # ── PIM (JSON-RPC source) ────────────────────────────────────────────────
    PIM_HOSTNAME: str = os.getenv("PIM_HOSTNAME", "")
    PIM_USER: str = os.getenv("PIM_USER", "")
    PIM_PASSWORD: str = os.getenv("PIM_PASSWORD", "")
    # Probed in order; the first partition that yields records wins
    PIM_PARTITIONS: list[str] = _get_list("PIM_PARTITIONS", ["production_api", "test", "demo"])
    PIM_LANGUAGE: str = os.getenv("PIM_LANGUAGE", "EN")
    PIM_TIMEOUT: int = _get_int("PIM_TIMEOUT", 60)

    # ── Shopify Admin GraphQL ────────────────────────────────────────────────
    SHOPIFY_SHOP: str = (os.getenv("SHOPIFY_SHOP", "") or "").replace("https://", "").rstrip("/")
    SHOPIFY_ACCESS_TOKEN: str = os.getenv("SHOPIFY_ACCESS_TOKEN", "")
    SHOPIFY_API_VERSION: str = os.getenv("SHOPIFY_API_VERSION", "2025-01")

    # ── Import behaviour ─────────────────────────────────────────────────────
    MUTATION_DELAY_MS: int = _get_int("MUTATION_DELAY_MS", 500)
    ATTACH_DELAY_MS: int = _get_int("ATTACH_DELAY_MS", 100)
    SPLIT_THRESHOLD: int = _get_int("SPLIT_THRESHOLD", 100)
    VENDOR: str = os.getenv("VENDOR", "Stanley/Stella")
    PRODUCT_TAGS: list[str] = _get_list("PRODUCT_TAGS", ["Stanley/Stella Importer"])
    PRODUCT_STATUS: str = os.getenv("PRODUCT_STATUS", "DRAFT")
    METAFIELD_NAMESPACE: str = os.getenv("METAFIELD_NAMESPACE", "stanley_stella")
    METAFIELD_VARIANT_NAMESPACE: str = os.getenv("METAFIELD_VARIANT_NAMESPACE", "stanley_stella_variant")
    WRITE_METAFIELDS: bool = _get_bool("WRITE_METAFIELDS", True)

    # Extra TypeCode → taxonomy GID pairs, e.g. {"BABY_TEES": "gid://shopify/TaxonomyCategory/aa-1-2-9"}
    CATEGORY_OVERRIDES: dict = _get_json_map("CATEGORY_OVERRIDES", {})

    # ── Style listing cache ──────────────────────────────────────────────────
    STYLE_CACHE_TTL: int = _get_int("STYLE_CACHE_TTL", 3600)

    # ── Persistence ──────────────────────────────────────────────────────────
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./data/pim_sync.db")

    # ── Admin Panel ──────────────────────────────────────────────────────────
    ADMIN_USER: str = os.getenv("ADMIN_USER", "admin")
    ADMIN_PASS: str = os.getenv("ADMIN_PASS", "changeme")

    # ── CORS ─────────────────────────────────────────────────────────────────
    # Comma-separated list in .env, e.g. "https://example.com, https://foo.bar"
    CORS_ORIGINS: list[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


settings = Settings()
