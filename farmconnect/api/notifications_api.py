# farmconnect/api/notifications_api.py

from fastapi import APIRouter, Depends, Query, Request

from farmconnect.api.auth import auth_identity
from farmconnect.services.marketplace.notification_service import NotificationService

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


def notification_service(request: Request) -> NotificationService:
    return request.app.state.notification_service


@router.get("")
def list_notifications(
    unread_only: bool = Query(False),
    identity=Depends(auth_identity),
    svc: NotificationService = Depends(notification_service),
):
    uid = identity.get("userId")
    rows = svc.list_for_user(uid, unread_only=unread_only)
    return {
        "ok": True,
        "unread": svc.unread_count(uid),
        "notifications": [n.model_dump(mode="json") for n in rows],
    }


@router.post("/read-all")
def read_all(identity=Depends(auth_identity), svc: NotificationService = Depends(notification_service)):
    return {"ok": True, "updated": svc.mark_all_as_read(identity.get("userId"))}


@router.post("/{notification_id}/read")
def read_one(
    notification_id: str,
    identity=Depends(auth_identity),
    svc: NotificationService = Depends(notification_service),
):
    n = svc.mark_as_read(notification_id, user_id=identity.get("userId"))
    return {"ok": True, "notification": n.model_dump(mode="json")}
