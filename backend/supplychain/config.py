# backend/supplychain/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/supplychain.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///supplychain.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Deployer address; receives the ADMIN role on first startup if no admin exists
    SUPPLYCHAIN_ADMIN_ADDRESS = os.environ.get("SUPPLYCHAIN_ADMIN_ADDRESS")

    # Static price feed (mock aggregator) used when no live feed is wired in
    PRICE_FEED_DECIMALS = _env_int("PRICE_FEED_DECIMALS", 18)
    PRICE_FEED_VALUE = _env_int("PRICE_FEED_VALUE", 4358000)

    # Strict escrow: attached value must equal the escrowed amount exactly
    ESCROW_STRICT_DEPOSIT = _env_bool("ESCROW_STRICT_DEPOSIT", False)

    # Cap on distributor resale markup in basis points (None = uncapped)
    MAX_DISTRIBUTOR_MARKUP_BPS = _env_int("MAX_DISTRIBUTOR_MARKUP_BPS", None)
