"""Observability API routes."""

from fastapi import APIRouter, Query

from ...app import Application
from ...errors import NotFoundError
from ..errors import error_response


def create_observability_router(app: Application) -> APIRouter:
    """Create observability router."""
    router = APIRouter(prefix="/api", tags=["observability"])

    @router.get("/logs")
    async def get_logs(
        agent_id: str | None = Query(None, description="Filter by agent"),
    ):
        """Transaction log in insertion order."""
        try:
            logs = await app.storage.get_logs(agent_id)
            return {"success": True, "logs": [entry.to_dict() for entry in logs]}
        except Exception as e:
            return error_response(e)

    @router.get("/payments")
    async def list_payments(
        agent_id: str | None = Query(None, description="Buyer or seller id"),
    ):
        try:
            payments = await app.storage.list_payments(agent_id)
            return {"success": True, "payments": [p.to_dict() for p in payments]}
        except Exception as e:
            return error_response(e)

    @router.get("/payments/{payment_id}")
    async def get_payment(payment_id: str):
        """Payment with its full event history."""
        try:
            payment = await app.storage.get_payment(payment_id)
            if payment is None:
                raise NotFoundError("payment", payment_id)
            return {"success": True, "payment": payment.to_dict()}
        except Exception as e:
            return error_response(e)

    return router
