import os
from dotenv import load_dotenv

load_dotenv()

CURRENCY_SYMBOLS = {"gbp": "£", "usd": "$", "eur": "€"}


def _clean_env(value) -> str:
    """Strip whitespace and stray quotes/backticks pasted around env values."""
    return (value or "").strip().strip("'").strip('"').strip("`")


def get_env(name: str, default: str = "") -> str:
    # Read at call time so a changed environment is picked up without a restart
    return _clean_env(os.getenv(name, default))


def get_bool(name: str, default: bool = False) -> bool:
    raw = get_env(name, "true" if default else "false").lower()
    return raw in ("1", "true", "yes", "on")


def store_currency() -> str:
    return (get_env("STORE_CURRENCY", "gbp") or "gbp").lower()


def currency_symbol(currency: str | None = None) -> str:
    code = (currency or store_currency()).lower()
    return CURRENCY_SYMBOLS.get(code, code.upper() + " ")


def public_base_url(host_url: str = "") -> str:
    """Base URL used in redirect targets and email links.

    PUBLIC_BASE_URL wins over the request host (needed behind proxies).
    """
    return (get_env("PUBLIC_BASE_URL") or host_url or "http://localhost:4000").rstrip("/")


def stripe_settings() -> dict:
    return {
        "secret_key": get_env("STRIPE_SECRET_KEY"),
        "publishable_key": get_env("STRIPE_PUBLISHABLE_KEY"),
        "webhook_secret": get_env("STRIPE_WEBHOOK_SECRET"),
    }


def paypal_settings() -> dict:
    return {
        "client_id": get_env("PAYPAL_CLIENT_ID"),
        "client_secret": get_env("PAYPAL_CLIENT_SECRET"),
        "env": (get_env("PAYPAL_ENV", "sandbox") or "sandbox").lower(),
        "brand_name": get_env("STORE_NAME", "Storefront"),
    }
