"""
Announcement endpoints. Anyone may read; management posts.
"""

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from core.auth import AuthenticatedUser, get_current_host
from services.announcements import AnnouncementService, get_announcement_service


router = APIRouter(prefix="/api/announcements", tags=["announcements"])

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


class AnnouncementRequest(BaseModel):
    message: str = Field(..., min_length=1)


@router.get("")
async def list_announcements(
    response: Response,
    service: AnnouncementService = Depends(get_announcement_service)
):
    response.headers.update(NO_CACHE_HEADERS)
    return {"announcements": service.list_latest()}


@router.post("", status_code=201)
async def create_announcement(
    body: AnnouncementRequest,
    user: AuthenticatedUser = Depends(get_current_host),
    service: AnnouncementService = Depends(get_announcement_service)
):
    announcement = service.create(body.message, author_uid=user.uid)
    return {"message": "Announcement posted", "announcement": announcement}


@router.put("/{announcement_id}")
async def update_announcement(
    announcement_id: str,
    body: AnnouncementRequest,
    user: AuthenticatedUser = Depends(get_current_host),
    service: AnnouncementService = Depends(get_announcement_service)
):
    announcement = service.update(announcement_id, body.message)
    return {"message": "Announcement updated", "announcement": announcement}


@router.delete("/{announcement_id}")
async def delete_announcement(
    announcement_id: str,
    user: AuthenticatedUser = Depends(get_current_host),
    service: AnnouncementService = Depends(get_announcement_service)
):
    service.delete(announcement_id)
    return {"message": "Announcement deleted", "id": announcement_id}
