"""
Tests for the aiohttp adapters against a local aiohttp.web server.
"""

import pytest
from aiohttp import web

from launcher.adapters.conway import ConwayCreditsClient
from launcher.adapters.dexscreener import DexScreenerMarketData
from launcher.errors import CollaboratorFailure


@pytest.fixture
async def local_server():
    """Start an aiohttp app on a free port; yields a function that registers routes first."""
    runners = []

    async def _serve(routes: web.RouteTableDef) -> str:
        app = web.Application()
        app.add_routes(routes)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, "127.0.0.1", 0)
        await site.start()
        runners.append(runner)
        port = site._server.sockets[0].getsockname()[1]
        return f"http://127.0.0.1:{port}"

    yield _serve
    for runner in runners:
        await runner.cleanup()


class TestConwayCredits:

    async def test_reads_balance_with_bearer_token(self, local_server):
        routes = web.RouteTableDef()
        seen = {}

        @routes.get("/v1/credits/balance")
        async def balance(request):
            seen["auth"] = request.headers.get("Authorization")
            return web.json_response({"balance": 17.5})

        base = await local_server(routes)
        client = ConwayCreditsClient(base, "key-123")
        try:
            assert await client.get_credit_balance() == 17.5
        finally:
            await client.close()
        assert seen["auth"] == "Bearer key-123"

    async def test_http_error_is_collaborator_failure(self, local_server):
        routes = web.RouteTableDef()

        @routes.get("/v1/credits/balance")
        async def balance(request):
            return web.Response(status=401, text="bad key")

        base = await local_server(routes)
        client = ConwayCreditsClient(base, "nope")
        try:
            with pytest.raises(CollaboratorFailure, match="HTTP 401"):
                await client.get_credit_balance()
        finally:
            await client.close()


class TestDexScreener:

    async def test_get_stats(self, local_server):
        routes = web.RouteTableDef()

        @routes.get("/tokens/{ref}")
        async def tokens(request):
            assert request.match_info["ref"] == "mint-a"
            return web.json_response({"pairs": [
                {"dexId": "raydium", "priceUsd": "0.002", "liquidity": {"usd": 1000}, "volume": {"h24": 321}},
            ]})

        base = await local_server(routes)
        source = DexScreenerMarketData(base_url=f"{base}/tokens")
        try:
            stats = await source.get_stats("mint-a")
        finally:
            await source.close()
        assert stats.price == 0.002
        assert stats.volume_24h == 321.0
        assert stats.graduated is True

    async def test_null_pairs(self, local_server):
        routes = web.RouteTableDef()

        @routes.get("/tokens/{ref}")
        async def tokens(request):
            return web.json_response({"pairs": None})

        base = await local_server(routes)
        source = DexScreenerMarketData(base_url=f"{base}/tokens")
        try:
            stats = await source.get_stats("unknown")
        finally:
            await source.close()
        assert stats.volume_24h == 0.0
        assert stats.graduated is False
