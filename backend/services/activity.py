"""
Activity Log Service

Persists an audit trail of administrative actions (batch changes,
approvals, deletions, promotions) to the activityLogs collection.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from core.config import get_firestore_client, initialize_firebase, ACTIVITY_RETENTION_DAYS
from core.constants import (
    ACTIVITY_COLLECTION,
    ACTIVITY_LIMIT,
    ACTIVITY_WINDOW_DAYS,
    FIRESTORE_BATCH_LIMIT,
)


class ActivityService:
    """Service for reading and writing activity logs."""

    ACTIVITY_COLLECTION = ACTIVITY_COLLECTION

    def __init__(self):
        self.db = get_firestore_client()

    def log(
        self,
        action: str,
        details: str = "",
        user_id: Optional[str] = None,
        user_name: Optional[str] = None,
        role: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Record an action. Failures are reported but never break the
        operation being logged.
        """
        entry = {
            "action": action,
            "details": details,
            "userId": user_id,
            "userName": user_name,
            "role": role,
            "timestamp": datetime.utcnow().isoformat(),
        }
        try:
            doc_ref = self.db.collection(self.ACTIVITY_COLLECTION).document()
            doc_ref.set(entry)
        except Exception as e:
            print(f"[Activity] Failed to log '{action}': {e}")
            return None

        entry["id"] = doc_ref.id
        return entry

    def log_for(self, user, action: str, details: str = "") -> Optional[Dict[str, Any]]:
        """Log an action performed by an AuthenticatedUser."""
        if user is None:
            return self.log(action, details)
        return self.log(
            action,
            details,
            user_id=user.uid,
            user_name=user.name or user.email,
            role=user.role.value,
        )

    def list_recent(
        self,
        days: int = ACTIVITY_WINDOW_DAYS,
        limit: int = ACTIVITY_LIMIT
    ) -> List[Dict[str, Any]]:
        """Logs from the last `days` days, newest first."""
        cutoff = (datetime.utcnow() - timedelta(days=days)).isoformat()
        query = (
            self.db.collection(self.ACTIVITY_COLLECTION)
            .where("timestamp", ">=", cutoff)
            .order_by("timestamp", direction="DESCENDING")
            .limit(limit)
        )

        logs = []
        for doc in query.stream():
            data = doc.to_dict()
            data["id"] = doc.id
            logs.append(data)
        return logs

    def prune(self, retention_days: int = ACTIVITY_RETENTION_DAYS) -> int:
        """
        Delete logs older than the retention window.

        Returns:
            Number of deleted log entries
        """
        cutoff = (datetime.utcnow() - timedelta(days=retention_days)).isoformat()
        query = self.db.collection(self.ACTIVITY_COLLECTION).where("timestamp", "<", cutoff)

        batch = self.db.batch()
        batch_count = 0
        deleted = 0

        for doc in query.stream():
            batch.delete(doc.reference)
            batch_count += 1
            deleted += 1

            if batch_count >= FIRESTORE_BATCH_LIMIT:
                batch.commit()
                batch = self.db.batch()
                batch_count = 0

        if batch_count > 0:
            batch.commit()

        print(f"[Activity] Pruned {deleted} log entries older than {retention_days} days")
        return deleted


_activity_service: Optional[ActivityService] = None


def get_activity_service() -> ActivityService:
    """Get or create the activity service singleton."""
    global _activity_service
    if _activity_service is None:
        initialize_firebase()
        _activity_service = ActivityService()
    return _activity_service
