# farmconnect/api/orders_api.py
# FastAPI router for buyer checkout and farmer order handling.

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Request

from farmconnect.api.auth import auth_identity, require_buyer, require_farmer
from farmconnect.models.marketplace.order_models import (
    Order,
    OrderStatusUpdateRequest,
    PlaceOrderRequest,
    next_states,
)
from farmconnect.services.marketplace.orders_service import OrderService

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


def order_service(request: Request) -> OrderService:
    return request.app.state.order_service


def _out(order: Order) -> Dict[str, Any]:
    row = order.model_dump(mode="json")
    row["nextStatuses"] = sorted(s.value for s in next_states(order.status))
    return row


@router.post("", status_code=201)
def place_order(
    req: PlaceOrderRequest,
    identity=Depends(auth_identity),
    svc: OrderService = Depends(order_service),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    require_buyer(identity)
    order = svc.place_order(
        identity,
        crop_id=req.cropId,
        quantity=req.quantity,
        delivery_date=req.deliveryDate,
        notes=req.notes,
        delivery_address=req.deliveryAddress,
        idempotency_key=req.idempotencyKey or idempotency_key,
    )
    return {"ok": True, "order": _out(order)}


@router.get("/mine")
def my_orders(identity=Depends(auth_identity), svc: OrderService = Depends(order_service)):
    buyer_id = require_buyer(identity)
    return {"ok": True, "orders": [_out(o) for o in svc.list_orders_for_buyer(buyer_id)]}


@router.get("/farmer")
def farmer_orders(identity=Depends(auth_identity), svc: OrderService = Depends(order_service)):
    farmer_id = require_farmer(identity)
    return {"ok": True, "orders": [_out(o) for o in svc.list_orders_for_farmer(farmer_id)]}


@router.get("/farmer/kpis")
def farmer_kpis(identity=Depends(auth_identity), svc: OrderService = Depends(order_service)):
    farmer_id = require_farmer(identity)
    return {"ok": True, "kpis": svc.get_kpis(farmer_id)}


@router.get("/{order_id}")
def get_order(order_id: str, identity=Depends(auth_identity), svc: OrderService = Depends(order_service)):
    return {"ok": True, "order": _out(svc.get_order_for_user(identity, order_id))}


@router.patch("/{order_id}/status")
def update_status(
    order_id: str,
    req: OrderStatusUpdateRequest,
    identity=Depends(auth_identity),
    svc: OrderService = Depends(order_service),
):
    require_farmer(identity)
    order = svc.update_order_status(identity, order_id, req.status)
    return {"ok": True, "order": _out(order)}
