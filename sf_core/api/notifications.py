"""
通知中心 API 路由
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from sf_core.services import NotificationService, Principal
from sf_core.utils.errors import NotFoundError
from .deps import get_current_principal, get_notification_service
from .models import ApiResponse, MarkAsReadRequest

router = APIRouter()


@router.get("/unread", response_model=ApiResponse)
async def list_unread(
    include_read: bool = Query(False, alias="all", description="同时返回已读通知"),
    principal: Principal = Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
):
    """未读通知列表"""
    notifications = await service.list_for_user(principal, unread_only=not include_read)
    return ApiResponse.ok(notifications, metadata={"count": len(notifications)})


@router.get("/count/unread", response_model=ApiResponse)
async def count_unread(
    principal: Principal = Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
):
    return ApiResponse.ok({"count": await service.count_unread(principal)})


@router.patch("/mark-as-read", response_model=ApiResponse)
async def mark_as_read(
    body: Optional[MarkAsReadRequest] = Body(default=None),
    principal: Principal = Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
):
    """标记已读，不传 notificationIds 时全部标记"""
    ids = body.notification_ids if body else None
    updated = await service.mark_as_read(principal, ids)
    return ApiResponse.ok({"updated": updated}, message="Notifications marked as read")


@router.delete("/{notification_id}", response_model=ApiResponse)
async def delete_notification(
    notification_id: int,
    principal: Principal = Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
):
    if not await service.delete(principal, notification_id):
        raise NotFoundError(code="NOTIFICATION_NOT_FOUND", resource="Notification")
    return ApiResponse.ok(message="Notification deleted")
