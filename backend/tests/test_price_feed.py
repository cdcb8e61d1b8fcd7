import pytest

from supplychain.errors import NotFoundError
from supplychain.services import price_feed
from supplychain.services.price_feed import StaticPriceFeed, quote_batch, to_feed_value
from supplychain.validation import ValidationError


def test_default_feed_comes_from_config(app, db_session):
    feed = price_feed.get_price_feed()

    assert feed.decimals() == 18
    assert feed.latest_value() == 4_358_000


def test_to_feed_value_scales_by_decimals():
    feed = StaticPriceFeed(decimals=18, value=4_358_000)

    assert to_feed_value(10 ** 18, feed) == 4_358_000
    assert to_feed_value(5 * 10 ** 17, feed) == 2_179_000
    assert to_feed_value(100, feed) == 0


def test_static_feed_rejects_negative_decimals():
    with pytest.raises(ValidationError):
        StaticPriceFeed(decimals=-1, value=10)


def test_quote_batch(app, db_session, distributed_batch, monkeypatch):
    monkeypatch.setitem(app.extensions, "supplychain.price_feed", StaticPriceFeed(decimals=2, value=250))

    quote = quote_batch(distributed_batch.id)

    assert quote["price"] == 100
    assert quote["price_feed_value"] == 250
    assert quote["offer_price"] == 150
    assert quote["offer_price_feed_value"] == 375
    assert quote["feed_decimals"] == 2


def test_quote_before_distribution_has_no_offer(app, db_session, batch):
    quote = quote_batch(batch.id, feed=StaticPriceFeed(decimals=0, value=3))

    assert quote["price_feed_value"] == 300
    assert quote["offer_price"] is None
    assert quote["offer_price_feed_value"] is None


def test_quote_unknown_batch(app, db_session):
    with pytest.raises(NotFoundError):
        quote_batch(31_337)
