"""
Announcement Service

Management posts short announcements that every dashboard shows.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from core.config import get_firestore_client, initialize_firebase
from core.constants import ANNOUNCEMENTS_COLLECTION, ANNOUNCEMENTS_LIMIT, ANNOUNCEMENT_SENDER
from core.exceptions import InvalidRequestError, NotFoundError


class AnnouncementService:
    """Service for managing announcements in Firestore."""

    ANNOUNCEMENTS_COLLECTION = ANNOUNCEMENTS_COLLECTION

    def __init__(self):
        self.db = get_firestore_client()

    def list_latest(self, limit: int = ANNOUNCEMENTS_LIMIT) -> List[Dict[str, Any]]:
        """Newest announcements first."""
        query = (
            self.db.collection(self.ANNOUNCEMENTS_COLLECTION)
            .order_by("timestamp", direction="DESCENDING")
            .limit(limit)
        )

        announcements = []
        for doc in query.stream():
            data = doc.to_dict()
            data["id"] = doc.id
            announcements.append(data)
        return announcements

    def create(self, message: str, author_uid: Optional[str] = None) -> Dict[str, Any]:
        message = (message or "").strip()
        if not message:
            raise InvalidRequestError("Announcement message cannot be empty.")

        announcement = {
            "message": message,
            "sender": ANNOUNCEMENT_SENDER,
            "authorUid": author_uid,
            "timestamp": datetime.utcnow().isoformat(),
        }
        doc_ref = self.db.collection(self.ANNOUNCEMENTS_COLLECTION).document()
        doc_ref.set(announcement)

        announcement["id"] = doc_ref.id
        return announcement

    def update(self, announcement_id: str, message: str) -> Dict[str, Any]:
        message = (message or "").strip()
        if not message:
            raise InvalidRequestError("Announcement message cannot be empty.")

        doc_ref = self.db.collection(self.ANNOUNCEMENTS_COLLECTION).document(announcement_id)
        doc = doc_ref.get()
        if not doc.exists:
            raise NotFoundError("Announcement not found.")

        doc_ref.update({
            "message": message,
            "updatedAt": datetime.utcnow().isoformat(),
        })

        data = doc.to_dict()
        data["message"] = message
        data["id"] = announcement_id
        return data

    def delete(self, announcement_id: str) -> None:
        doc_ref = self.db.collection(self.ANNOUNCEMENTS_COLLECTION).document(announcement_id)
        if not doc_ref.get().exists:
            raise NotFoundError("Announcement not found.")
        doc_ref.delete()


_announcement_service: Optional[AnnouncementService] = None


def get_announcement_service() -> AnnouncementService:
    """Get or create the announcement service singleton."""
    global _announcement_service
    if _announcement_service is None:
        initialize_firebase()
        _announcement_service = AnnouncementService()
    return _announcement_service
