import asyncio
import unittest
from decimal import Decimal

import httpx
from fakes import (
    BRETT,
    CLANKER,
    DEGEN,
    USDC,
    WALLET,
    FakeDex,
    FakeExplorer,
    FakeSocial,
    dex_pair,
    make_client,
    wait_a_bit,
)

from sniffer.errors import AggregateError, InvalidAddressError, NormalizationError
from sniffer.models import PlatformType, TokenTransferRecord
from sniffer.services.cache import CacheLayer, CacheState
from sniffer.services.data_aggregator import (
    MAX_TOKEN_RESULTS,
    MAX_PAGE_SIZE,
    DataAggregator,
    settle_all,
    token_cache_key,
    validate_address,
    wallet_cache_key,
)
from sniffer.services.dex_client import DexClient
from sniffer.services.explorer_client import ExplorerClient


def make_aggregator(explorer=None, dex=None, social=None, **kwargs):
    return DataAggregator(
        explorer or FakeExplorer(),
        dex or FakeDex(),
        social or FakeSocial(),
        CacheLayer(),
        **kwargs,
    )


class BlockingExplorer(FakeExplorer):
    """Le résumé du wallet ne répond jamais : seule une annulation le débloque."""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.cancelled = False

    async def get_balance(self, address):
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


class TestHelpers(unittest.IsolatedAsyncioTestCase):
    def test_validate_address(self):
        self.assertEqual(validate_address(" " + WALLET.replace("1", "A") + " "), WALLET.replace("1", "a"))
        with self.assertRaises(InvalidAddressError):
            validate_address("0x123")

    def test_cache_keys(self):
        self.assertEqual(wallet_cache_key("0xABC"), "wallet_profiler_0xabc")
        self.assertEqual(token_cache_key(" Clanker ", False), "tokens:search:clanker")
        self.assertEqual(token_cache_key(None, True), "tokens:trending")
        self.assertEqual(token_cache_key("", False), "tokens:all")

    async def test_settle_all_waits_for_every_call(self):
        async def good():
            await asyncio.sleep(0)
            return 1

        async def bad():
            raise NormalizationError("forme inattendue")

        outcomes = await settle_all({"good": good(), "bad": bad()})

        self.assertTrue(outcomes["good"].ok)
        self.assertEqual(outcomes["good"].value, 1)
        self.assertIsInstance(outcomes["bad"].error, NormalizationError)

    async def test_settle_all_propagates_programming_errors(self):
        async def broken():
            raise KeyError("bug")

        with self.assertRaises(KeyError):
            await settle_all({"broken": broken()})


class TestWalletAggregate(unittest.IsolatedAsyncioTestCase):
    async def test_full_profile(self):
        aggregator = make_aggregator()

        aggregate = await aggregator.get_wallet_aggregate(WALLET)

        self.assertFalse(aggregate.partial)
        self.assertEqual(aggregate.wallet.native_balance.formatted, Decimal("1.5"))
        self.assertEqual(aggregate.wallet.transaction_count, 2)
        self.assertEqual(len(aggregate.transactions), 2)
        # deux transferts du même contrat : un seul solde
        self.assertEqual(len(aggregate.token_balances), 1)
        self.assertEqual(aggregate.token_balances[0].contract_address, USDC)
        self.assertEqual(aggregate.token_balances[0].balance_formatted, Decimal("0.25"))

    async def test_partial_success(self):
        aggregator = make_aggregator(explorer=FakeExplorer(fail={"transactions"}))

        aggregate = await aggregator.get_wallet_aggregate(WALLET)

        self.assertTrue(aggregate.partial)
        self.assertEqual(aggregate.failed_sources, ["transactions"])
        self.assertEqual(aggregate.transactions, [])
        self.assertIsNotNone(aggregate.wallet)
        self.assertEqual(aggregator.cache.state(wallet_cache_key(WALLET)), CacheState.FRESH)

    async def test_network_values_default_to_zero(self):
        """Gas price et bloc indisponibles : le résumé du wallet reste présent."""
        aggregator = make_aggregator(explorer=FakeExplorer(fail={"network"}))

        with self.assertLogs("sniffer.services.data_aggregator", level="WARNING"):
            aggregate = await aggregator.get_wallet_aggregate(WALLET)

        self.assertIsNotNone(aggregate.wallet)
        self.assertFalse(aggregate.partial)
        self.assertEqual(aggregate.wallet.gas_price_wei, 0)
        self.assertEqual(aggregate.wallet.block_number, 0)
        self.assertEqual(aggregate.wallet.transaction_count, 2)

    async def test_missing_api_key_only_fails_wallet(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"status": "1", "message": "OK", "result": "0"})

        explorer = make_client(ExplorerClient, handler, api_key="")
        dex = FakeDex(search_results={"brett": [dex_pair(BRETT, "BRETT", liquidity=1)]})
        aggregator = make_aggregator(
            explorer=explorer, dex=dex, known_tokens=[], popular_searches=["brett"]
        )

        with self.assertRaises(AggregateError):
            await aggregator.get_wallet_aggregate(WALLET)
        tokens = await aggregator.get_token_list()

        self.assertEqual(requests, [])
        self.assertEqual([t.symbol for t in tokens], ["BRETT"])
        await explorer.aclose()

    async def test_all_sources_failed_is_not_cached(self):
        explorer = FakeExplorer(fail={"wallet", "transactions", "token_balances"})
        aggregator = make_aggregator(explorer=explorer)

        with self.assertRaises(AggregateError) as ctx:
            await aggregator.get_wallet_aggregate(WALLET)

        self.assertEqual(set(ctx.exception.failures), {"wallet", "transactions", "token_balances"})
        self.assertEqual(aggregator.cache.state(wallet_cache_key(WALLET)), CacheState.EMPTY)

    async def test_cache_hit_skips_upstream(self):
        explorer = FakeExplorer()
        aggregator = make_aggregator(explorer=explorer)

        first = await aggregator.get_wallet_aggregate(WALLET)
        calls = explorer.calls
        second = await aggregator.get_wallet_aggregate(WALLET.upper().replace("0X", "0x"))

        self.assertEqual(explorer.calls, calls)
        self.assertEqual(first, second)

        await aggregator.get_wallet_aggregate(WALLET, force_refresh=True)
        self.assertGreater(explorer.calls, calls)

    async def test_invalid_address_makes_no_call(self):
        explorer = FakeExplorer()
        aggregator = make_aggregator(explorer=explorer)

        with self.assertRaises(InvalidAddressError):
            await aggregator.get_wallet_aggregate("vitalik")

        self.assertEqual(explorer.calls, 0)

    async def test_cancellation_does_not_write_cache(self):
        """Annuler le wallet annule ses appels sans toucher aux autres agrégations."""
        explorer = BlockingExplorer()
        dex = FakeDex(search_results={"clanker": [dex_pair(CLANKER, "CLANKER", volume=1, liquidity=1)]})
        aggregator = make_aggregator(explorer=explorer, dex=dex)

        wallet_task = asyncio.create_task(aggregator.get_wallet_aggregate(WALLET))
        token_task = asyncio.create_task(aggregator.get_token_list(search="clanker"))

        await explorer.started.wait()
        await token_task
        await wait_a_bit()

        wallet_task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await wallet_task

        self.assertTrue(explorer.cancelled)
        self.assertEqual(aggregator.cache.state(wallet_cache_key(WALLET)), CacheState.EMPTY)
        self.assertEqual(
            aggregator.cache.state(token_cache_key("clanker", False)), CacheState.FRESH
        )


class TestTokenList(unittest.IsolatedAsyncioTestCase):
    async def test_search_is_unique_and_sorted_by_liquidity(self):
        dex = FakeDex(
            search_results={
                "clanker": [
                    dex_pair(CLANKER, "CLANKER", volume=100, liquidity=10, pair_address="0xa"),
                    dex_pair(CLANKER, "CLANKER", volume=200, liquidity=5, pair_address="0xb"),
                    dex_pair(BRETT, "BRETT", volume=50, liquidity=100),
                ]
            }
        )
        aggregator = make_aggregator(dex=dex)

        tokens = await aggregator.get_token_list(search="clanker")

        ids = [t.id for t in tokens]
        liquidity = [t.liquidity_usd or 0 for t in tokens]
        self.assertEqual(len(ids), len(set(ids)))
        self.assertEqual(liquidity, sorted(liquidity, reverse=True))
        clanker = next(t for t in tokens if t.id == CLANKER)
        self.assertEqual(clanker.dex_info.pair_address, "0xb")

    async def test_search_failure(self):
        aggregator = make_aggregator(dex=FakeDex(failing={"clanker"}))

        with self.assertRaises(AggregateError):
            await aggregator.get_token_list(search="clanker")

        self.assertEqual(
            aggregator.cache.state(token_cache_key("clanker", False)), CacheState.EMPTY
        )

    async def test_default_list_is_capped(self):
        queries = [f"q{i}" for i in range(30)]
        search_results = {
            q: [
                dex_pair("0x%040x" % (i * 10 + j + 1), f"T{i}_{j}", liquidity=i * 10 + j)
                for j in range(5)
            ]
            for i, q in enumerate(queries)
        }
        aggregator = make_aggregator(
            dex=FakeDex(search_results=search_results), known_tokens=[], popular_searches=queries
        )

        tokens = await aggregator.get_token_list()

        self.assertEqual(len(tokens), MAX_TOKEN_RESULTS)
        self.assertEqual(len({t.id for t in tokens}), MAX_TOKEN_RESULTS)

    async def test_known_token_uses_best_pair(self):
        dex = FakeDex(
            token_pairs={
                CLANKER: [
                    dex_pair(CLANKER, "CLANKER", liquidity=10, pair_address="0xsmall"),
                    dex_pair(CLANKER, "CLANKER", liquidity=50, pair_address="0xbig"),
                    # paire où le token n'est que la quote : ignorée
                    dex_pair(USDC, "USDC", liquidity=1000, pair_address="0xother"),
                ]
            },
            search_results={"clanker": [dex_pair(CLANKER, "CLANKER", liquidity=20)]},
            failing={"down"},
        )
        aggregator = make_aggregator(
            dex=dex, known_tokens=[CLANKER], popular_searches=["clanker", "down"]
        )

        tokens = await aggregator.get_token_list()

        self.assertEqual([t.id for t in tokens], [CLANKER])
        self.assertEqual(tokens[0].dex_info.pair_address, "0xbig")

    async def test_trending_sorted_by_volume(self):
        dex = FakeDex(
            token_pairs={
                CLANKER: [dex_pair(CLANKER, "CLANKER", volume=10)],
                BRETT: [dex_pair(BRETT, "BRETT", volume=300)],
            },
            failing={DEGEN},
        )
        aggregator = make_aggregator(dex=dex, known_tokens=[CLANKER, BRETT, DEGEN])

        tokens = await aggregator.get_token_list(trending=True)

        self.assertEqual([t.symbol for t in tokens], ["BRETT", "CLANKER"])

    async def test_all_lookups_failed(self):
        dex = FakeDex(failing={CLANKER, BRETT})
        aggregator = make_aggregator(dex=dex, known_tokens=[CLANKER, BRETT], popular_searches=[])

        with self.assertRaises(AggregateError) as ctx:
            await aggregator.get_token_list(trending=True)

        self.assertEqual(len(ctx.exception.failures), 2)
        self.assertEqual(aggregator.cache.state("tokens:trending"), CacheState.EMPTY)

    async def test_undecodable_lookup_is_a_source_failure(self):
        """Un corps gzip illisible fait échouer ce token seulement."""

        def handler(request):
            if request.url.path.endswith(CLANKER):
                return httpx.Response(
                    200,
                    headers={"content-encoding": "gzip", "content-type": "application/json"},
                    stream=httpx.ByteStream(b"not gzip at all"),
                )
            return httpx.Response(200, json={"pairs": [dex_pair(BRETT, "BRETT", liquidity=5)]})

        dex = make_client(DexClient, handler)
        aggregator = make_aggregator(dex=dex, known_tokens=[CLANKER, BRETT], popular_searches=[])

        tokens = await aggregator.aggregate_token_search(None)

        self.assertEqual([t.id for t in tokens], [BRETT])
        await dex.aclose()

    async def test_cached_list(self):
        dex = FakeDex(search_results={"brett": [dex_pair(BRETT, "BRETT", liquidity=1)]})
        aggregator = make_aggregator(dex=dex, known_tokens=[], popular_searches=["brett"])

        await aggregator.get_token_list()
        calls = dex.calls
        tokens = await aggregator.get_token_list()

        self.assertEqual(dex.calls, calls)
        self.assertEqual(tokens[0].symbol, "BRETT")


class TestSocialProfiles(unittest.IsolatedAsyncioTestCase):
    PROFILES = [
        {"type": "zora", "name": "alice", "metadata": {}},
        {"type": "farcaster", "name": "alice", "metadata": {"follower_count": 5}},
        {"type": "myspace", "name": "alice"},
    ]

    async def test_zora_profile_is_enriched(self):
        social = FakeSocial(
            profiles=self.PROFILES,
            zora_user={"address": WALLET, "follower_count": 42, "nft_count": None},
        )
        aggregator = make_aggregator(social=social)

        profiles = await aggregator.get_social_profiles(WALLET)

        self.assertEqual(
            [p.platform_type for p in profiles], [PlatformType.ZORA, PlatformType.FARCASTER]
        )
        self.assertEqual(profiles[0].metadata["follower_count"], 42)
        self.assertNotIn("nft_count", profiles[0].metadata)
        self.assertEqual(profiles[1].metadata, {"follower_count": 5})

    async def test_zero_followers_is_not_enriched(self):
        social = FakeSocial(
            profiles=[{"type": "zora", "name": "bob", "metadata": {"follower_count": 0}}],
            zora_user={"address": WALLET, "follower_count": 42},
        )
        aggregator = make_aggregator(social=social)

        profiles = await aggregator.get_social_profiles(WALLET)

        self.assertEqual(social.zora_calls, 0)
        self.assertEqual(profiles[0].metadata["follower_count"], 0)

    async def test_ens_name_is_resolved(self):
        social = FakeSocial(profiles=self.PROFILES[1:2], names={"alice.eth": WALLET})
        aggregator = make_aggregator(social=social)

        profiles = await aggregator.get_social_profiles("alice.eth")

        self.assertEqual(profiles[0].address, WALLET)
        self.assertEqual(aggregator.cache.state(f"social:{WALLET}"), CacheState.FRESH)

    async def test_unresolved_name(self):
        aggregator = make_aggregator()

        with self.assertRaises(InvalidAddressError):
            await aggregator.get_social_profiles("nobody.eth")
        with self.assertRaises(InvalidAddressError):
            await aggregator.get_social_profiles("alice")

    async def test_social_source_down(self):
        aggregator = make_aggregator(social=FakeSocial(fail=True))

        with self.assertRaises(AggregateError):
            await aggregator.get_social_profiles(WALLET)


class TestHistoryPages(unittest.IsolatedAsyncioTestCase):
    async def test_transactions_page(self):
        explorer = FakeExplorer()
        aggregator = make_aggregator(explorer=explorer)

        transactions = await aggregator.get_transactions(WALLET, page=2, offset=500)

        self.assertEqual([t.hash for t in transactions], ["0x01", "0x02"])
        self.assertEqual(explorer.pages, [("txlist", 2, MAX_PAGE_SIZE)])

    async def test_token_transfers_page(self):
        explorer = FakeExplorer()
        aggregator = make_aggregator(explorer=explorer)

        transfers = await aggregator.get_token_transfers(WALLET, page=0, offset=5)

        self.assertEqual(len(transfers), 2)
        self.assertIsInstance(transfers[0], TokenTransferRecord)
        self.assertEqual(transfers[0].value, Decimal("0.25"))
        self.assertEqual(transfers[0].token_symbol, "USDC")
        self.assertEqual(explorer.pages, [("tokentx", 1, 5)])

    async def test_pages_are_not_cached(self):
        explorer = FakeExplorer()
        aggregator = make_aggregator(explorer=explorer)

        await aggregator.get_transactions(WALLET)
        await aggregator.get_transactions(WALLET)

        self.assertEqual(len(explorer.pages), 2)

    async def test_source_failure(self):
        aggregator = make_aggregator(explorer=FakeExplorer(fail={"token_balances"}))

        with self.assertRaises(AggregateError) as ctx:
            await aggregator.get_token_transfers(WALLET)

        self.assertEqual(list(ctx.exception.failures), ["transfers"])

    async def test_invalid_address(self):
        explorer = FakeExplorer()
        aggregator = make_aggregator(explorer=explorer)

        with self.assertRaises(InvalidAddressError):
            await aggregator.get_transactions("0x123")

        self.assertEqual(explorer.calls, 0)


if __name__ == "__main__":
    unittest.main()
