"""
Tests for launcher/adapters/dexscreener.py (pure pair parsing, no network)
"""

from launcher.adapters.dexscreener import stats_from_pairs


def _pair(dex: str, price: str, liquidity: float, volume: float) -> dict:
    return {
        "dexId": dex,
        "priceUsd": price,
        "liquidity": {"usd": liquidity},
        "volume": {"h24": volume},
    }


class TestStatsFromPairs:

    def test_no_pairs_is_untraded(self):
        stats = stats_from_pairs([])
        assert stats.volume_24h == 0.0
        assert stats.graduated is False

    def test_still_on_curve(self):
        stats = stats_from_pairs([_pair("pumpfun", "0.00002", 8000.0, 1500.0)])
        assert stats.graduated is False
        assert stats.price == 0.00002
        assert stats.volume_24h == 1500.0

    def test_migrated_pairs_mean_graduated(self):
        stats = stats_from_pairs([
            _pair("raydium", "0.0011", 90000.0, 40000.0),
            _pair("orca", "0.0010", 5000.0, 2500.0),
        ])
        assert stats.graduated is True
        assert stats.price == 0.0011
        assert stats.volume_24h == 42500.0

    def test_missing_fields_tolerated(self):
        stats = stats_from_pairs([{"dexId": "raydium", "priceUsd": None, "liquidity": None}])
        assert stats.price == 0.0
        assert stats.volume_24h == 0.0
