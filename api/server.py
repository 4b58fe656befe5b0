"""
Launcher API Server - FastAPI surface over the LaunchAgent tools

Endpoints:
- POST /deploy       Request a launch (admission gates apply)
- POST /harvest      Harvest fees from one position or all active ones
- GET  /treasury     Live balances + invested / earned / net P&L
- GET  /portfolio    Per-position performance
- GET  /survival     Survival tier, runway, auto-bridge outcome
- POST /swap         Swap native to the stable asset
- GET  /timing       Launch timing advice
- GET  /performance  Rolling daily performance history
- GET  /health       Heartbeat

A rejected launch is 409 with the gate and reason. A malformed launch is
422. A collaborator failure is 502 with the collaborator's message verbatim.
"""

import os
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from launcher.constitution import DeployMethod

logger = logging.getLogger("launcher.api")

ADMISSION_GATES = ("concurrency", "solvency", "cooldown")


# ============================================================
# MODELS
# ============================================================

class DeployRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    ticker: str = Field(..., min_length=1, max_length=16)
    description: str = Field("", max_length=1000)
    method: Optional[DeployMethod] = None
    initial_buy: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    liquidity: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    supply: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    image_prompt: Optional[str] = Field(None, max_length=500)


class HarvestRequest(BaseModel):
    position_ref: Optional[str] = None      # None = every active position


class SwapRequest(BaseModel):
    amount: float = Field(..., gt=0)


def _raise_for_error(payload: dict):
    if "error" not in payload:
        return
    gate = payload.get("gate")
    if gate == "request":
        raise HTTPException(422, {"error": payload["error"]})
    if gate in ADMISSION_GATES:
        raise HTTPException(409, {"error": payload["error"], "gate": gate})
    raise HTTPException(502, {"error": payload["error"]})


def create_app(agent, lifespan=None) -> FastAPI:
    """
    Create FastAPI app wired to a LaunchAgent.

    lifespan: optional async context manager factory (main.py uses it to
    start the heartbeat alongside the server)
    """
    app = FastAPI(
        title="launchling - token launch agent",
        description="Launches tokens, harvests fees, pays for its own compute.",
        version="0.1.0",
        lifespan=lifespan,
    )

    cors_origins = os.getenv("CORS_ORIGINS", "*").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ============================================================
    # ROUTES
    # ============================================================

    @app.post("/deploy")
    async def deploy(req: DeployRequest):
        """Launch a token. Rejections carry the gate that said no."""
        params = req.model_dump(exclude_none=True)
        if req.method is not None:
            params["method"] = req.method.value
        result = await agent.deploy(params)
        _raise_for_error(result)
        return result

    @app.post("/harvest")
    async def harvest(req: HarvestRequest):
        result = await agent.harvest(req.position_ref)
        _raise_for_error(result)
        return result

    @app.get("/treasury")
    async def treasury():
        result = await agent.check_treasury()
        _raise_for_error(result)
        return result

    @app.get("/portfolio")
    async def portfolio():
        result = await agent.check_portfolio()
        _raise_for_error(result)
        return result

    @app.get("/survival")
    async def survival():
        result = await agent.check_survival()
        _raise_for_error(result)
        return result

    @app.post("/swap")
    async def swap(req: SwapRequest):
        result = await agent.swap_to_stable(req.amount)
        _raise_for_error(result)
        return result

    @app.get("/timing")
    async def timing():
        return agent.launch_timing()

    @app.get("/performance")
    async def performance(limit: int = 30):
        history = agent.performance_history()
        return {"history": history[-limit:] if limit > 0 else []}

    @app.get("/health")
    async def health():
        """Heartbeat endpoint."""
        status = agent.get_status()
        return {
            "alive": status["survival_tier"] != "dead",
            "survival_tier": status["survival_tier"],
            "positions": status["positions"],
            "ledger": status["ledger"],
            "admission": status["admission"],
        }

    return app
