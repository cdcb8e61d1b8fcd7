# Overview: Read-only access to the external price oracle used to quote batches.

"""
Price Feed

The ledger only consumes two values from an oracle: its decimals and its
latest value. Prices stay in native base units everywhere else; conversion
happens only when quoting.

to_feed_value(native, feed) = native * latest_value // 10 ** decimals
"""

from __future__ import annotations

from typing import Protocol

from flask import current_app

from ..errors import NotFoundError
from ..extensions import db
from ..models import Batch
from ..validation import ValidationError, coerce_int


class PriceFeed(Protocol):
    def decimals(self) -> int: ...

    def latest_value(self) -> int: ...


class StaticPriceFeed:
    """Fixed-value feed; stands in for a mock aggregator in dev and tests."""

    def __init__(self, decimals: int, value: int):
        decimals = coerce_int(decimals, "decimals")
        value = coerce_int(value, "value")
        if decimals < 0:
            raise ValidationError("decimals must be >= 0")
        if value < 0:
            raise ValidationError("value must be >= 0")
        self._decimals = decimals
        self._value = value

    def decimals(self) -> int:
        return self._decimals

    def latest_value(self) -> int:
        return self._value

    def update(self, value: int) -> None:
        self._value = coerce_int(value, "value")

    def __repr__(self) -> str:
        return f"StaticPriceFeed(decimals={self._decimals}, value={self._value})"


def build_price_feed(config) -> StaticPriceFeed:
    return StaticPriceFeed(
        decimals=config.get("PRICE_FEED_DECIMALS", 18),
        value=config.get("PRICE_FEED_VALUE", 0),
    )


def get_price_feed() -> PriceFeed:
    """The app's configured feed, built from config if nothing was wired in."""
    feed = current_app.extensions.get("supplychain.price_feed")
    if feed is None:
        feed = build_price_feed(current_app.config)
        current_app.extensions["supplychain.price_feed"] = feed
    return feed


def to_feed_value(native_amount: int, feed: PriceFeed | None = None) -> int:
    feed = feed or get_price_feed()
    amount = coerce_int(native_amount, "native_amount")
    return amount * feed.latest_value() // (10 ** feed.decimals())


def quote_batch(batch_id: int, feed: PriceFeed | None = None) -> dict:
    """Price and offer price of a batch in native and feed-denominated units."""
    batch = db.session.get(Batch, batch_id)
    if not batch:
        raise NotFoundError(f"Batch {batch_id} not found", batch_id=batch_id)

    feed = feed or get_price_feed()
    return {
        "batch_id": batch.id,
        "price": batch.price,
        "price_feed_value": to_feed_value(batch.price, feed),
        "offer_price": batch.offer_price,
        "offer_price_feed_value": (
            to_feed_value(batch.offer_price, feed) if batch.offer_price is not None else None
        ),
        "feed_decimals": feed.decimals(),
        "feed_latest_value": feed.latest_value(),
    }
