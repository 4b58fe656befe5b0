"""
launchling - main entry point

Builds the collaborators, wires the agent, starts the heartbeat and the
HTTP server. One file to understand how everything connects.

Usage:
    python main.py              # Start the agent (paper mode by default)
    MARKET_DATA=dexscreener python main.py
"""

import os
import re
import logging
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv

# ============================================================
# BOOTSTRAP
# ============================================================

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


class _SecretMaskingFilter(logging.Filter):
    """Redact 64-char hex strings (private keys) from all log output."""
    _PATTERN = re.compile(r'(?<![0-9a-fA-F])(?:0x)?([0-9a-fA-F]{64})(?![0-9a-fA-F])')

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._PATTERN.sub('[REDACTED]', record.msg)
        if record.args:
            try:
                formatted = record.getMessage()
            except (TypeError, ValueError):
                return True
            if self._PATTERN.search(formatted):
                record.msg = self._PATTERN.sub('[REDACTED]', formatted)
                record.args = None
        return True


_mask_filter = _SecretMaskingFilter()
for _h in logging.root.handlers:
    _h.addFilter(_mask_filter)

logger = logging.getLogger("launcher.main")


# ============================================================
# MODULE IMPORTS
# ============================================================

from launcher.agent import LaunchAgent, assemble_agent
from launcher.collaborators import SystemClock
from launcher.config import LauncherConfig
from launcher.heartbeat import Heartbeat
from launcher.state import StateStore
from launcher.wallet import load_or_create_wallet
from launcher.adapters.paper import (
    PaperLedger, PaperDeployer, PaperPoolManager, PaperCredits, PaperMarketData, paper_bridge,
)
from launcher.adapters.dexscreener import DexScreenerMarketData
from launcher.adapters.conway import ConwayCreditsClient
from api.server import create_app


# ============================================================
# WIRING
# ============================================================

config = LauncherConfig.from_env()
store = StateStore(config.state_path)
store.load()

# HTTP clients that hold aiohttp sessions, closed on shutdown
_closeables: list = []


def build_agent(config: LauncherConfig, store: StateStore) -> LaunchAgent:
    """
    Paper collaborators for the chain side. Market data and compute
    credits can be swapped for live HTTP sources by configuration.
    """
    wallet = load_or_create_wallet(config.wallet_private_key, store, config.wallet_secret)
    logger.info(f"Wallet: {wallet.address} ({wallet.origin})")

    ledger = PaperLedger(
        native=config.paper_native_balance,
        stable=config.paper_stable_balance,
        address=wallet.address,
    )
    paper_credits = PaperCredits(config.paper_credits)

    if config.credits_api_configured:
        credit_source = ConwayCreditsClient(config.conway_api_url, config.conway_api_key)
        _closeables.append(credit_source)
        logger.info(f"Compute credits: {config.conway_api_url}")
    else:
        credit_source = paper_credits
        logger.info("Compute credits: paper (CONWAY_API_URL / CONWAY_API_KEY not set)")

    if config.market_data == "dexscreener":
        market_data = DexScreenerMarketData()
        _closeables.append(market_data)
    else:
        market_data = PaperMarketData()
    logger.info(f"Market data: {type(market_data).__name__}")

    return assemble_agent(
        config=config,
        store=store,
        ledger_client=ledger,
        deployer=PaperDeployer(ledger),
        pool_manager=PaperPoolManager(ledger),
        bridge=paper_bridge(ledger, paper_credits, live_credits=config.credits_api_configured),
        credit_source=credit_source,
        market_data=market_data,
        clock=SystemClock(),
    )


agent = build_agent(config, store)
heartbeat = Heartbeat(agent.periodic_tasks())


@asynccontextmanager
async def lifespan(app):
    """Startup and shutdown."""
    logger.info("=" * 60)
    logger.info("launchling is waking up...")
    logger.info(f"Config: {config.describe()}")
    logger.info("=" * 60)

    survival = await agent.check_survival()
    if "error" in survival:
        logger.warning(f"Initial survival check failed: {survival['error']}")
    else:
        logger.info(f"Survival tier: {survival['tier']} ({survival['estimated_runway_hours']}h runway)")

    heartbeat.start()
    logger.info("launchling is alive. Accepting launches.")

    yield

    logger.info("launchling shutting down...")
    await heartbeat.stop()
    for client in _closeables:
        await client.close()
    store.save()
    logger.info("Goodbye.")


app = create_app(agent, lifespan=lifespan)


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    reload = os.getenv("DEV", "").lower() in ("1", "true", "yes")

    logger.info(f"Starting server on {config.api_host}:{config.api_port} (reload={reload})")

    uvicorn.run(
        "main:app",
        host=config.api_host,
        port=config.api_port,
        reload=reload,
        log_level=LOG_LEVEL.lower(),
    )
