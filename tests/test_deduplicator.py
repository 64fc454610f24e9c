import unittest

from fakes import BRETT, CLANKER, dex_pair

from sniffer.services.deduplicator import TieBreak, dedupe, sort_by
from sniffer.services.normalizer import normalize_dex_pair


def token(address, symbol="TKN", volume=None, liquidity=None, pair_address="0xpair"):
    return normalize_dex_pair(
        dex_pair(address, symbol, volume=volume, liquidity=liquidity, pair_address=pair_address),
        "base",
    )


class TestDedupe(unittest.TestCase):
    def test_keeps_highest_volume(self):
        low = token(CLANKER, volume=100, pair_address="0xlow")
        high = token(CLANKER, volume=200, pair_address="0xhigh")

        result = dedupe([low, high], TieBreak.VOLUME_24H)

        self.assertEqual(len(result), 1)
        self.assertEqual(result[0].dex_info.pair_address, "0xhigh")

    def test_keeps_highest_liquidity(self):
        records = [
            token(CLANKER, liquidity=5000, pair_address="0xa"),
            token(CLANKER, liquidity=None, pair_address="0xb"),
            token(CLANKER, liquidity=9000, pair_address="0xc"),
        ]

        result = dedupe(records, TieBreak.LIQUIDITY_USD)

        self.assertEqual(result[0].dex_info.pair_address, "0xc")

    def test_tie_keeps_first_seen(self):
        first = token(CLANKER, volume=100, pair_address="0xfirst")
        second = token(CLANKER, volume=100, pair_address="0xsecond")

        result = dedupe([first, second], TieBreak.VOLUME_24H)

        self.assertEqual(result[0].dex_info.pair_address, "0xfirst")

    def test_case_insensitive_addresses(self):
        records = [token(CLANKER.upper().replace("0X", "0x"), volume=1), token(CLANKER, volume=2)]

        result = dedupe(records, TieBreak.VOLUME_24H)

        self.assertEqual(len(result), 1)
        self.assertEqual(result[0].volume_24h_usd, 2)

    def test_idempotent_and_first_seen_order(self):
        records = [
            token(BRETT, volume=10),
            token(CLANKER, volume=5),
            token(BRETT, volume=50),
        ]

        once = dedupe(records, TieBreak.VOLUME_24H)
        twice = dedupe(once, TieBreak.VOLUME_24H)

        self.assertEqual([r.id for r in once], [BRETT, CLANKER])
        self.assertEqual(once, twice)

    def test_sort_by_descending_with_limit(self):
        records = [
            token(BRETT, liquidity=10),
            token(CLANKER, liquidity=None),
            token("0x" + "1" * 40, liquidity=30),
        ]

        ordered = sort_by(records, TieBreak.LIQUIDITY_USD, limit=2)

        self.assertEqual([r.liquidity_usd for r in ordered], [30, 10])


if __name__ == "__main__":
    unittest.main()
