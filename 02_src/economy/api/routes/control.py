"""Control API routes."""

from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ...app import Application
from ..errors import error_response


DEFAULT_TOKEN_COUNT = 1000


# Global SIM instance (will be set by main app)
_sim_instance: Any = None


def set_sim_instance(sim: Any) -> None:
    """Set the global SIM instance."""
    global _sim_instance
    _sim_instance = sim


def get_sim_instance() -> Any:
    """Get the global SIM instance."""
    return _sim_instance


class PurchaseRequest(BaseModel):
    """Request model for triggering a purchase."""

    token_count: int = DEFAULT_TOKEN_COUNT


class DisputeRequest(BaseModel):
    """Request model for opening a dispute."""

    reason: str = "Buyer not satisfied"


class ResolveRequest(BaseModel):
    """Request model for settling a dispute."""

    refund: bool = True


class StatusResponse(BaseModel):
    """Response model for control actions."""

    success: bool
    message: str


def create_control_router(app: Application) -> APIRouter:
    """Create control router."""
    router = APIRouter(prefix="/api", tags=["control"])

    @router.post("/agents/initialize", response_model=StatusResponse)
    async def initialize_agents():
        """Create wallets, register both agents and start polling."""
        try:
            await app.initialize_agents()
            return {"success": True, "message": "Agents initialized successfully"}
        except Exception as e:
            return error_response(e)

    @router.post("/agents/purchase", response_model=StatusResponse)
    async def trigger_purchase(request: PurchaseRequest | None = None):
        """Have the buyer start a purchase."""
        token_count = request.token_count if request else DEFAULT_TOKEN_COUNT
        if not app.is_initialized():
            return JSONResponse(
                status_code=400,
                content={
                    "success": False,
                    "error": "Agents not initialized. Call /api/agents/initialize first.",
                },
            )
        try:
            await app.trigger_purchase(token_count)
            return {"success": True, "message": f"Purchase triggered for {token_count} tokens"}
        except Exception as e:
            return error_response(e)

    @router.post("/reset", response_model=StatusResponse)
    async def reset_system():
        """Stop agents and clear all data."""
        try:
            await app.reset()
            return {"success": True, "message": "System reset successfully"}
        except Exception as e:
            return error_response(e)

    @router.post("/payments/{payment_id}/dispute")
    async def dispute_payment(payment_id: str, request: DisputeRequest | None = None):
        """Open a dispute while the refund window is open."""
        reason = request.reason if request else DisputeRequest().reason
        try:
            payment = await app.dispute_payment(payment_id, reason)
            return {"success": True, "payment": payment.to_dict()}
        except Exception as e:
            return error_response(e)

    @router.post("/payments/{payment_id}/resolve")
    async def resolve_dispute(payment_id: str, request: ResolveRequest | None = None):
        """Settle a dispute as refunded or completed."""
        refund = request.refund if request else True
        try:
            payment = await app.resolve_dispute(payment_id, refund)
            return {"success": True, "payment": payment.to_dict()}
        except Exception as e:
            return error_response(e)

    @router.post("/sim/start", response_model=StatusResponse)
    async def start_sim():
        """Run the scripted purchase scenario in the background."""
        if not _sim_instance:
            return JSONResponse(
                status_code=404, content={"success": False, "error": "SIM not configured"}
            )
        try:
            await _sim_instance.start()
            return {"success": True, "message": "SIM started"}
        except Exception as e:
            return error_response(e)

    @router.post("/sim/stop", response_model=StatusResponse)
    async def stop_sim():
        if not _sim_instance:
            return JSONResponse(
                status_code=404, content={"success": False, "error": "SIM not configured"}
            )
        try:
            await _sim_instance.stop()
            return {"success": True, "message": "SIM stopped"}
        except Exception as e:
            return error_response(e)

    return router
