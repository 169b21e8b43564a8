"""
Student Service

Handles all Firestore and Firebase Auth operations for student accounts:
registration, bulk upload, profile updates, promotion between academic
years and cleanup of passed-out students.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from firebase_admin import auth, firestore

from core.config import get_firestore_client, initialize_firebase, DEFAULT_STUDENT_PASSWORD
from core.constants import (
    StudentStatus,
    UserRole,
    STUDENTS_COLLECTION,
    BATCHES_COLLECTION,
    PROMOTION_YEARS,
    FIRESTORE_BATCH_LIMIT,
    AUTH_DELETE_LIMIT,
)
from core.exceptions import ConflictError, InvalidRequestError, NotFoundError
from core.parsers import chunked, matches_search, parse_student_row
from services.cache import get_cache, is_cache_available
from services.activity import get_activity_service

SEARCH_FIELDS = ("name", "studentId", "rollNumber")

# Fields a student may change on their own profile
SELF_EDITABLE_FIELDS = {
    "phoneNumber", "whatsappNumber", "address", "permanentAddress",
    "personalDetails", "academics",
}
# Additional fields only staff may change
STAFF_EDITABLE_FIELDS = SELF_EDITABLE_FIELDS | {
    "name", "department", "section", "currentYear", "rollNumber", "registrationNumber",
}

PROMOTE = "promote"
PASS_OUT = "pass_out"


class StudentService:
    """Service for managing student data in Firebase Firestore."""

    STUDENTS_COLLECTION = STUDENTS_COLLECTION
    BATCHES_COLLECTION = BATCHES_COLLECTION

    def __init__(self, use_cache: bool = True, activity=None):
        self.db = get_firestore_client()
        self._use_cache = use_cache and is_cache_available()
        self._cache = get_cache() if self._use_cache else None
        self.activity = activity if activity is not None else get_activity_service()

    def _students(self):
        return self.db.collection(self.STUDENTS_COLLECTION)

    def _invalidate(self):
        if self._use_cache and self._cache:
            self._cache.invalidate_people()

    def _exists(self, field: str, value: Any) -> bool:
        return bool(list(self._students().where(field, "==", value).limit(1).stream()))

    # --- Queries ---

    def list_students(
        self,
        department: Optional[str] = None,
        current_year: Optional[int] = None,
        status: Optional[str] = None,
        batch_id: Optional[str] = None,
        search: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        List students with optional filters.

        Equality filters run in Firestore; the search term is matched
        against name, studentId and rollNumber in memory.
        """
        query = self._students()
        if department:
            query = query.where("department", "==", department.lower())
        if current_year is not None:
            query = query.where("currentYear", "==", current_year)
        if status:
            query = query.where("status", "==", status)
        if batch_id:
            query = query.where("batchIds", "array_contains", batch_id)

        students = []
        for doc in query.stream():
            data = doc.to_dict()
            data["id"] = doc.id
            if matches_search(data, search, SEARCH_FIELDS):
                students.append(data)

        students.sort(key=lambda s: (s.get("name") or "").lower())
        return students

    def get_student(self, student_id: str) -> Dict[str, Any]:
        doc = self._students().document(student_id).get()
        if not doc.exists:
            raise NotFoundError("Student not found.")
        data = doc.to_dict()
        data["id"] = doc.id
        return data

    def get_students_by_ids(self, student_ids: List[str]) -> List[Dict[str, Any]]:
        """Fetch several students, preserving order and skipping missing ids."""
        students = []
        for student_id in dict.fromkeys(student_ids):
            doc = self._students().document(student_id).get()
            if doc.exists:
                data = doc.to_dict()
                data["id"] = doc.id
                students.append(data)
        return students

    def check_existence(self, student_id: Optional[str] = None, email: Optional[str] = None) -> None:
        """
        Raise if a student ID or email is already registered.

        Raises:
            InvalidRequestError: Neither value given
            ConflictError: One of the values is taken
        """
        if not student_id and not email:
            raise InvalidRequestError("Student ID or email is required.")
        if student_id and self._exists("studentId", student_id):
            raise ConflictError(f"Student ID {student_id} already exists.")
        if email and self._exists("email", email.lower()):
            raise ConflictError(f"Email {email} already registered.")

    # --- Registration ---

    def _new_student(self, uid: str, data: Dict[str, Any]) -> Dict[str, Any]:
        now = datetime.utcnow().isoformat()
        return {
            "uid": uid,
            "studentId": data["studentId"],
            "name": data["name"],
            "email": data["email"].lower(),
            "role": UserRole.STUDENT.value,
            "rollNumber": data["rollNumber"],
            "registrationNumber": data["registrationNumber"],
            "department": data["department"].lower(),
            "section": data.get("section"),
            "admissionYear": data.get("admissionYear"),
            "currentYear": data.get("currentYear"),
            "phoneNumber": str(data["phoneNumber"]),
            "whatsappNumber": str(data.get("whatsappNumber") or ""),
            "isEmailVerified": data.get("isEmailVerified", True),
            "isPhoneVerified": data.get("isPhoneVerified", False),
            "status": StudentStatus.ACTIVE.value,
            "batchIds": [],
            "profileEditCount": 0,
            "createdAt": now,
            "updatedAt": now,
        }

    def register_student(self, data: Dict[str, Any], password: str) -> Dict[str, Any]:
        """
        Self-registration: create the auth user and a profile keyed by uid.

        Raises:
            ConflictError: Student ID or email already registered
        """
        self.check_existence(data["studentId"], None)
        self.check_existence(None, data["email"])

        try:
            user_record = auth.create_user(
                email=data["email"].lower(),
                password=password,
                display_name=data["name"],
            )
        except auth.EmailAlreadyExistsError:
            raise ConflictError(f"Email {data['email']} already registered.")

        student = self._new_student(user_record.uid, data)
        try:
            self._students().document(user_record.uid).set(student)
        except Exception:
            auth.delete_user(user_record.uid)
            raise

        self._invalidate()
        print(f"[Students] Registered {student['studentId']} ({student['email']})")

        student["id"] = user_record.uid
        return student

    def bulk_create(self, rows: List[Dict[str, Any]], actor=None) -> Dict[str, Any]:
        """
        Create student accounts from uploaded spreadsheet rows.

        Rows with missing data or a roll number / email that already exists
        (in Firestore or earlier in the same upload) are skipped and
        reported. Accounts get the default password.
        """
        results = {"successCount": 0, "errorCount": 0, "errors": []}

        existing_rolls = set()
        existing_emails = set()
        for doc in self._students().stream():
            data = doc.to_dict()
            if data.get("rollNumber"):
                existing_rolls.add(str(data["rollNumber"]))
            if data.get("email"):
                existing_emails.add(str(data["email"]).lower())

        for row in rows:
            data, missing = parse_student_row(row)
            if missing:
                results["errorCount"] += 1
                results["errors"].append(
                    f"Skipped row (missing required data): Name: {data.get('name') or 'N/A'}, "
                    f"Roll: {data.get('rollNumber') or 'N/A'}"
                )
                continue

            if data["rollNumber"] in existing_rolls:
                results["errorCount"] += 1
                results["errors"].append(f"Skipped (Roll number already exists): {data['rollNumber']}")
                continue

            if data["email"] in existing_emails:
                results["errorCount"] += 1
                results["errors"].append(f"Skipped (Email already exists): {data['email']}")
                continue

            try:
                user_record = auth.create_user(
                    email=data["email"],
                    password=DEFAULT_STUDENT_PASSWORD,
                    display_name=data["name"],
                    email_verified=True,
                )
                student = self._new_student(user_record.uid, data)
                self._students().document(user_record.uid).set(student)
            except auth.EmailAlreadyExistsError:
                results["errorCount"] += 1
                results["errors"].append(f"Skipped (Email already exists in Auth): {data['email']}")
                continue
            except Exception as e:
                results["errorCount"] += 1
                results["errors"].append(f"Failed for {data['name']} ({data['rollNumber']}): {e}")
                print(f"[Students] Failed to create {data['name']} ({data['rollNumber']}): {e}")
                continue

            existing_rolls.add(data["rollNumber"])
            existing_emails.add(data["email"])
            results["successCount"] += 1

        self._invalidate()
        self.activity.log_for(
            actor, "students_bulk_created",
            f"Bulk upload: {results['successCount']} created, {results['errorCount']} skipped"
        )
        print(f"[Students] Bulk upload: {results['successCount']} created, {results['errorCount']} skipped")
        return results

    # --- Updates ---

    def update_student(
        self,
        student_id: str,
        data: Dict[str, Any],
        self_edit: bool = False
    ) -> Dict[str, Any]:
        """
        Update a student profile.

        Args:
            student_id: Student document ID
            data: Fields to change (None values are ignored)
            self_edit: True when the student edits their own profile;
                restricts the editable fields and counts the edit

        Raises:
            NotFoundError: Student doesn't exist
            InvalidRequestError: No changes, or a restricted field in a self edit
        """
        student = self.get_student(student_id)

        update_data = {k: v for k, v in data.items() if v is not None}
        if not update_data:
            raise InvalidRequestError("No fields provided for update.")

        allowed = SELF_EDITABLE_FIELDS if self_edit else STAFF_EDITABLE_FIELDS
        restricted = sorted(set(update_data) - allowed)
        if restricted:
            raise InvalidRequestError(f"These fields cannot be changed: {', '.join(restricted)}")

        if "department" in update_data:
            update_data["department"] = update_data["department"].lower()

        update_data["updatedAt"] = datetime.utcnow().isoformat()
        write_data = dict(update_data)
        if self_edit:
            write_data["profileEditCount"] = firestore.Increment(1)

        self._students().document(student_id).update(write_data)
        self._invalidate()

        student.update(update_data)
        if self_edit:
            student["profileEditCount"] = student.get("profileEditCount", 0) + 1
        return student

    def promote(
        self,
        student_ids: List[str],
        action: str,
        target_year: Optional[int] = None,
        actor=None
    ) -> Dict[str, Any]:
        """
        Promote students to a later year or mark them passed out.

        Raises:
            InvalidRequestError: Empty selection, unknown action or bad year
        """
        student_ids = [s for s in student_ids if isinstance(s, str) and s]
        if not student_ids:
            raise InvalidRequestError("Missing required fields: studentIds (array) and action.")

        if action == PASS_OUT:
            update = {"status": StudentStatus.PASSED_OUT.value}
            message = f"{len(student_ids)} student(s) successfully marked as passed out."
        elif action == PROMOTE:
            if target_year is None:
                raise InvalidRequestError("Target year is required for promotion.")
            if target_year not in PROMOTION_YEARS:
                raise InvalidRequestError("Invalid target year. Must be 2, 3, or 4.")
            update = {"currentYear": target_year}
            message = f"{len(student_ids)} student(s) successfully promoted to year {target_year}."
        else:
            raise InvalidRequestError("Invalid action specified.")

        update["updatedAt"] = datetime.utcnow().isoformat()
        for chunk in chunked(student_ids, FIRESTORE_BATCH_LIMIT):
            batch = self.db.batch()
            for student_id in chunk:
                batch.update(self._students().document(student_id), update)
            batch.commit()

        self._invalidate()
        self.activity.log_for(actor, f"students_{action}", message)
        return {"message": message, "count": len(student_ids)}

    # --- Deletion ---

    def _batch_refs_for(self, student_id: str, student: Dict[str, Any]) -> Dict[str, Any]:
        """Batch document refs that list this student, keyed by batch id."""
        refs = {}
        query = self.db.collection(self.BATCHES_COLLECTION).where(
            "studentIds", "array_contains", student_id
        )
        for doc in query.stream():
            refs[doc.id] = doc.reference
        for batch_id in student.get("batchIds") or []:
            if batch_id not in refs:
                ref = self.db.collection(self.BATCHES_COLLECTION).document(batch_id)
                if ref.get().exists:
                    refs[batch_id] = ref
        return refs

    def delete_student(self, student_id: str, actor=None) -> Dict[str, Any]:
        """
        Delete a student, remove them from their batches and delete the
        auth user. A missing auth user is ignored.
        """
        student = self.get_student(student_id)

        batch = self.db.batch()
        batch_refs = self._batch_refs_for(student_id, student)
        for ref in batch_refs.values():
            batch.update(ref, {"studentIds": firestore.ArrayRemove([student_id])})
        batch.delete(self._students().document(student_id))
        batch.commit()

        uid = student.get("uid")
        if uid:
            try:
                auth.delete_user(uid)
            except auth.UserNotFoundError:
                print(f"[Students] Auth user {uid} already deleted")

        if self._use_cache and self._cache:
            self._cache.invalidate_batches()
        self._invalidate()

        self.activity.log_for(actor, "student_deleted", f"Deleted student {student.get('name')} ({student.get('studentId')})")
        return {"id": student_id, "name": student.get("name"), "batchesUpdated": len(batch_refs)}

    def list_passed_out(self) -> List[Dict[str, Any]]:
        return self.list_students(status=StudentStatus.PASSED_OUT.value)

    def delete_passed_out(self, actor=None) -> Dict[str, Any]:
        """
        Delete every passed-out student.

        Firestore writes go out in batches of 500 operations and auth users
        are deleted 1000 uids per call.
        """
        students = self.list_passed_out()
        if not students:
            return {"message": "No passed-out students to delete.", "deleted": 0,
                    "authDeleted": 0, "authFailures": 0}

        student_ids = {s["id"] for s in students}

        # Removing members from batches is one update per batch
        operations = []
        query = self.db.collection(self.BATCHES_COLLECTION)
        for doc in query.stream():
            members = [sid for sid in doc.to_dict().get("studentIds") or [] if sid in student_ids]
            if members:
                operations.append(("update", doc.reference, members))
        for student in students:
            operations.append(("delete", self._students().document(student["id"]), None))

        for chunk in chunked(operations, FIRESTORE_BATCH_LIMIT):
            batch = self.db.batch()
            for kind, ref, members in chunk:
                if kind == "update":
                    batch.update(ref, {"studentIds": firestore.ArrayRemove(members)})
                else:
                    batch.delete(ref)
            batch.commit()

        uids = [s["uid"] for s in students if s.get("uid")]
        auth_deleted = 0
        auth_failures = 0
        for chunk in chunked(uids, AUTH_DELETE_LIMIT):
            result = auth.delete_users(chunk)
            auth_deleted += result.success_count
            auth_failures += result.failure_count
            for error in result.errors:
                print(f"[Students] Failed to delete auth user at index {error.index}: {error.reason}")

        if self._use_cache and self._cache:
            self._cache.invalidate_batches()
        self._invalidate()

        message = f"Successfully deleted {len(students)} passed-out student records."
        self.activity.log_for(actor, "passed_out_deleted", message)
        print(f"[Students] {message} ({auth_failures} auth deletions failed)")
        return {
            "message": message,
            "deleted": len(students),
            "authDeleted": auth_deleted,
            "authFailures": auth_failures,
        }


_student_service: Optional[StudentService] = None


def get_student_service() -> StudentService:
    """Get or create the student service singleton."""
    global _student_service
    if _student_service is None:
        initialize_firebase()
        _student_service = StudentService()
    return _student_service
