"""
Batch Service

Handles batches and their rosters in Firestore.

Membership is stored on both sides: a batch lists its students in
studentIds and teachers in teacherIds, and every student lists their
batches in batchIds. Both sides change in the same write batch (or
transaction) using ArrayUnion / ArrayRemove, so repeating an add or a
removal leaves the documents unchanged.

Roster rules for adding a student:
- the student exists and is active
- the student's department is one of the batch's departments
- the batch doesn't clash with another batch the student attends

Staff adding an existing member is a no-op, and a link present on only
one side is completed. Self-enrollment by an existing member is refused.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from firebase_admin import firestore

from core.config import get_firestore_client, initialize_firebase
from core.constants import (
    ApprovalStatus,
    BatchStatus,
    StudentStatus,
    UserRole,
    DEPARTMENTS,
    BATCHES_COLLECTION,
    STUDENTS_COLLECTION,
    TEACHERS_COLLECTION,
    ATTENDANCE_COLLECTION,
    FIRESTORE_BATCH_LIMIT,
)
from core.exceptions import (
    AlreadyEnrolledError,
    BatchClosedError,
    DepartmentMismatchError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
    PortalError,
    ScheduleConflictError,
)
from core.parsers import chunked, matches_search
from core.schedule import (
    BatchScheduleManager,
    find_conflict,
    normalize_day,
    parse_date,
    parse_time,
    validate_time_range,
)
from services.cache import get_cache, is_cache_available
from services.activity import get_activity_service

SCHEDULE_FIELDS = (
    "startDate", "endDate", "daysOfWeek", "startTime", "endTime",
    "startTimeSecondHalf", "endTimeSecondHalf",
)

UPDATABLE_FIELDS = (
    "name", "topic", "departments", "roomNumber", "status",
) + SCHEDULE_FIELDS


def batch_departments(batch: Dict[str, Any]) -> List[str]:
    """Departments served by a batch. Older batches store a single department."""
    departments = batch.get("departments")
    if departments:
        return [d.lower() for d in departments]
    if batch.get("department"):
        return [batch["department"].lower()]
    return []


def can_manage_batch(batch: Dict[str, Any], user) -> bool:
    """Admins and hosts manage every batch; teachers only their own."""
    if user.is_admin:
        return True
    return user.role == UserRole.TEACHER and user.profile_id in (batch.get("teacherIds") or [])


def validate_batch(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check a full set of batch fields and normalize them.

    Returns:
        Copy of data with lower-cased departments and canonical day names

    Raises:
        InvalidRequestError: Describing the first invalid field
    """
    data = dict(data)

    if len((data.get("name") or "").strip()) < 3:
        raise InvalidRequestError("Batch name must be at least 3 characters.")
    if len((data.get("topic") or "").strip()) < 2:
        raise InvalidRequestError("Topic must be at least 2 characters.")

    departments = [d.strip().lower() for d in data.get("departments") or []]
    if not departments:
        raise InvalidRequestError("At least one department is required.")
    unknown = [d for d in departments if d not in DEPARTMENTS]
    if unknown:
        raise InvalidRequestError(f"Unknown department: {', '.join(unknown)}")
    data["departments"] = list(dict.fromkeys(departments))

    try:
        start = parse_date(data.get("startDate"))
        end = parse_date(data.get("endDate"))
    except ValueError as e:
        raise InvalidRequestError(str(e))
    if start is None or end is None:
        raise InvalidRequestError("Start date and end date are required.")
    if end < start:
        raise InvalidRequestError("End date cannot be before start date.")
    data["startDate"] = start.isoformat()
    data["endDate"] = end.isoformat()

    try:
        days = [normalize_day(d) for d in data.get("daysOfWeek") or []]
    except ValueError as e:
        raise InvalidRequestError(str(e))
    if not days:
        raise InvalidRequestError("Select at least one day of the week.")
    data["daysOfWeek"] = list(dict.fromkeys(days))

    try:
        validate_time_range(data.get("startTime"), data.get("endTime"))
    except ValueError as e:
        raise InvalidRequestError(str(e))

    second_start = data.get("startTimeSecondHalf")
    second_end = data.get("endTimeSecondHalf")
    if second_start or second_end:
        if not (second_start and second_end):
            raise InvalidRequestError("Both second half start and end times are required.")
        try:
            validate_time_range(second_start, second_end)
            if parse_time(second_start) < parse_time(data["endTime"]):
                raise InvalidRequestError("Second half must start after the first half ends.")
        except ValueError as e:
            raise InvalidRequestError(str(e))

    if data.get("roomNumber") and len(data["roomNumber"]) > 20:
        raise InvalidRequestError("Room number must be at most 20 characters.")

    return data


class BatchService:
    """Service for managing batches and rosters in Firebase Firestore."""

    BATCHES_COLLECTION = BATCHES_COLLECTION
    STUDENTS_COLLECTION = STUDENTS_COLLECTION
    TEACHERS_COLLECTION = TEACHERS_COLLECTION
    ATTENDANCE_COLLECTION = ATTENDANCE_COLLECTION

    def __init__(self, use_cache: bool = True, activity=None):
        self.db = get_firestore_client()
        self._use_cache = use_cache and is_cache_available()
        self._cache = get_cache() if self._use_cache else None
        self.activity = activity if activity is not None else get_activity_service()

    # --- Helpers ---

    def _batches(self):
        return self.db.collection(self.BATCHES_COLLECTION)

    def _students(self):
        return self.db.collection(self.STUDENTS_COLLECTION)

    def _snapshot(self, doc) -> Optional[Dict[str, Any]]:
        if not doc.exists:
            return None
        data = doc.to_dict()
        data["id"] = doc.id
        return data

    def _invalidate(self, batch_id: Optional[str] = None):
        if self._use_cache and self._cache:
            self._cache.invalidate_batches(batch_id)

    def can_manage(self, batch: Dict[str, Any], user) -> bool:
        return can_manage_batch(batch, user)

    def ensure_can_manage(self, batch: Dict[str, Any], user):
        if not can_manage_batch(batch, user):
            raise PermissionDeniedError("You are not assigned to this batch.")

    # --- Queries ---

    def list_batches(
        self,
        status: Optional[str] = None,
        department: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """List batches, newest start date first."""
        batches = None
        if self._use_cache and self._cache:
            batches = self._cache.get_all_batches()

        if not batches:
            batches = []
            for doc in self._batches().stream():
                data = doc.to_dict()
                data["id"] = doc.id
                batches.append(data)
            batches.sort(key=lambda b: str(b.get("startDate") or ""), reverse=True)

            if self._use_cache and self._cache and batches:
                self._cache.set_all_batches(batches)

        if status:
            batches = [b for b in batches if b.get("status") == status]
        if department:
            batches = [b for b in batches if department.lower() in batch_departments(b)]
        return batches

    def list_for_user(self, user, status: Optional[str] = None) -> List[Dict[str, Any]]:
        """Batches the user teaches or attends. Admins and hosts get every batch."""
        batches = self.list_batches(status=status)
        if user.is_admin:
            return batches
        if user.role == UserRole.TEACHER:
            return [b for b in batches if user.profile_id in (b.get("teacherIds") or [])]
        return [b for b in batches if user.profile_id in (b.get("studentIds") or [])]

    def get_batch(self, batch_id: str) -> Dict[str, Any]:
        if self._use_cache and self._cache:
            cached = self._cache.get_batch(batch_id)
            if cached:
                return cached

        batch = self._snapshot(self._batches().document(batch_id).get())
        if batch is None:
            raise NotFoundError("Batch not found.")

        if self._use_cache and self._cache:
            self._cache.set_batch(batch_id, batch)
        return batch

    def get_batches_by_ids(self, batch_ids: List[str]) -> List[Dict[str, Any]]:
        batches = []
        for batch_id in dict.fromkeys(batch_ids or []):
            batch = self._snapshot(self._batches().document(batch_id).get())
            if batch is not None:
                batches.append(batch)
        return batches

    def get_roster(self, batch_id: str) -> List[Dict[str, Any]]:
        """Student profiles of the batch, sorted by name."""
        batch = self.get_batch(batch_id)
        students = []
        for student_id in batch.get("studentIds") or []:
            student = self._snapshot(self._students().document(student_id).get())
            if student is not None:
                students.append(student)
        students.sort(key=lambda s: (s.get("name") or "").lower())
        return students

    def eligible_students(self, batch_id: str, search: Optional[str] = None) -> List[Dict[str, Any]]:
        """Active students of the batch's departments who aren't members yet."""
        batch = self.get_batch(batch_id)
        members = set(batch.get("studentIds") or [])
        departments = batch_departments(batch)
        if not departments:
            return []

        # Older profiles may lack status; a missing status counts as active
        query = self._students().where("department", "in", departments[:30])
        students = []
        for doc in query.stream():
            if doc.id in members:
                continue
            data = doc.to_dict()
            data["id"] = doc.id
            if data.get("status", StudentStatus.ACTIVE.value) != StudentStatus.ACTIVE.value:
                continue
            if matches_search(data, search, ("name", "studentId", "rollNumber")):
                students.append(data)
        students.sort(key=lambda s: (s.get("name") or "").lower())
        return students

    # --- Roster checks ---

    def _other_batches(self, student: Dict[str, Any], batch_id: str, transaction=None) -> List[Dict[str, Any]]:
        others = []
        for other_id in student.get("batchIds") or []:
            if other_id == batch_id:
                continue
            doc = self._batches().document(other_id).get(transaction=transaction)
            other = self._snapshot(doc)
            if other is not None:
                others.append(other)
        return others

    def check_student_can_join(
        self,
        batch: Dict[str, Any],
        student: Optional[Dict[str, Any]],
        other_batches: List[Dict[str, Any]]
    ) -> None:
        """
        Apply the roster rules for one student.

        Raises:
            NotFoundError, InvalidRequestError, DepartmentMismatchError,
            AlreadyEnrolledError or ScheduleConflictError
        """
        if student is None:
            raise NotFoundError("Student not found.")
        if student.get("status", StudentStatus.ACTIVE.value) != StudentStatus.ACTIVE.value:
            raise InvalidRequestError(f"Student {student.get('name')} is not active.")

        department = (student.get("department") or "").lower()
        if department not in batch_departments(batch):
            raise DepartmentMismatchError(
                f"Student {student.get('name')} belongs to department '{department}', "
                f"which this batch does not serve."
            )

        if student["id"] in (batch.get("studentIds") or []) or batch.get("id") in (student.get("batchIds") or []):
            raise AlreadyEnrolledError(f"Student {student.get('name')} is already in this batch.")

        conflict = find_conflict(batch, other_batches)
        if conflict is not None:
            raise ScheduleConflictError(
                f"Schedule conflict with batch '{conflict.get('name')}'.",
                conflict
            )

    def _plan_additions(
        self,
        batch: Dict[str, Any],
        student_ids: List[str]
    ) -> Tuple[List[str], List[str], List[Dict[str, Any]], List[PortalError]]:
        """
        Check every requested student.

        Students already linked on both sides are left unchanged. Students
        linked on one side only are accepted so the missing side gets
        written; the roster rules are not re-applied to them.

        Returns:
            (accepted ids, unchanged ids, skipped entries, errors)
        """
        accepted: List[str] = []
        unchanged: List[str] = []
        skipped: List[Dict[str, Any]] = []
        errors: List[PortalError] = []
        members = batch.get("studentIds") or []

        for student_id in dict.fromkeys(student_ids):
            student = self._snapshot(self._students().document(student_id).get())
            if student is not None:
                in_batch = student_id in members
                in_student = batch.get("id") in (student.get("batchIds") or [])
                if in_batch and in_student:
                    unchanged.append(student_id)
                    continue
                if in_batch or in_student:
                    accepted.append(student_id)
                    continue
            try:
                others = self._other_batches(student, batch.get("id")) if student else []
                self.check_student_can_join(batch, student, others)
            except PortalError as e:
                entry = {"studentId": student_id, "reason": e.message}
                if isinstance(e, ScheduleConflictError):
                    entry["conflictingBatch"] = {
                        "id": e.conflicting_batch.get("id"),
                        "name": e.conflicting_batch.get("name"),
                    }
                skipped.append(entry)
                errors.append(e)
                continue
            accepted.append(student_id)

        return accepted, unchanged, skipped, errors

    def _require_active_teachers(self, teacher_ids: List[str]) -> List[str]:
        teacher_ids = list(dict.fromkeys(teacher_ids or []))
        for teacher_id in teacher_ids:
            doc = self.db.collection(self.TEACHERS_COLLECTION).document(teacher_id).get()
            if not doc.exists:
                raise InvalidRequestError(f"Teacher {teacher_id} not found.")
            if doc.to_dict().get("status") != ApprovalStatus.ACTIVE.value:
                raise InvalidRequestError(f"Teacher {teacher_id} is not active.")
        return teacher_ids

    def _check_members_still_fit(self, batch: Dict[str, Any]):
        """After a schedule change, make sure no current member is double-booked."""
        for student in self.get_roster(batch["id"]):
            conflict = find_conflict(batch, self._other_batches(student, batch["id"]))
            if conflict is not None:
                raise ScheduleConflictError(
                    f"New schedule clashes with batch '{conflict.get('name')}' "
                    f"for student {student.get('name')}.",
                    conflict
                )

    # --- Create / update / delete ---

    def create_batch(self, data: Dict[str, Any], actor=None) -> Dict[str, Any]:
        """
        Create a batch with optional initial teachers and students.

        A teacher creating a batch is assigned to it. Requested students
        that break a roster rule are skipped and reported.
        """
        fields = validate_batch({k: data.get(k) for k in UPDATABLE_FIELDS})

        teacher_ids = list(data.get("teacherIds") or [])
        if actor is not None and actor.role == UserRole.TEACHER and actor.profile_id not in teacher_ids:
            teacher_ids.insert(0, actor.profile_id)
        teacher_ids = self._require_active_teachers(teacher_ids)

        doc_ref = self._batches().document()
        now = datetime.utcnow().isoformat()
        batch = {
            "name": fields["name"].strip(),
            "topic": fields["topic"].strip(),
            "departments": fields["departments"],
            "startDate": fields["startDate"],
            "endDate": fields["endDate"],
            "daysOfWeek": fields["daysOfWeek"],
            "startTime": fields["startTime"],
            "endTime": fields["endTime"],
            "startTimeSecondHalf": fields.get("startTimeSecondHalf"),
            "endTimeSecondHalf": fields.get("endTimeSecondHalf"),
            "roomNumber": fields.get("roomNumber"),
            "teacherIds": teacher_ids,
            "studentIds": [],
            "createdAt": now,
            "updatedAt": now,
        }
        batch["status"] = fields.get("status") or BatchScheduleManager.status_for_batch(batch)
        batch["id"] = doc_ref.id

        added, _, skipped, _ = self._plan_additions(batch, data.get("studentIds") or [])
        batch["studentIds"] = added

        write = self.db.batch()
        write.set(doc_ref, {k: v for k, v in batch.items() if k != "id"})
        for student_id in added:
            write.update(self._students().document(student_id), {
                "batchIds": firestore.ArrayUnion([doc_ref.id])
            })
        write.commit()

        self._invalidate(doc_ref.id)
        self.activity.log_for(actor, "batch_created", f"Created batch {batch['name']} with {len(added)} students")
        print(f"[Batches] Created {batch['name']} ({doc_ref.id}), {len(added)} students, {len(skipped)} skipped")

        return {"batch": batch, "added": added, "skipped": skipped}

    def update_batch(self, batch_id: str, data: Dict[str, Any], actor=None) -> Dict[str, Any]:
        """
        Update batch fields and, when given, apply roster changes.

        studentIds / teacherIds are treated as the desired membership; the
        difference with the stored lists is applied on both sides.
        """
        batch = self.get_batch(batch_id)
        if actor is not None:
            self.ensure_can_manage(batch, actor)

        changes = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS and v is not None}
        if "status" in changes and actor is not None and not actor.is_admin:
            raise PermissionDeniedError("Only admins can override batch status.")

        merged = validate_batch({**batch, "departments": batch_departments(batch), **changes})
        for key in changes:
            changes[key] = merged[key]

        schedule_changed = any(
            key in changes and changes[key] != batch.get(key) for key in SCHEDULE_FIELDS
        )
        updated = {**batch, **changes}
        if schedule_changed:
            if "status" not in changes:
                changes["status"] = BatchScheduleManager.status_for_batch(updated)
                updated["status"] = changes["status"]
            self._check_members_still_fit(updated)

        result: Dict[str, Any] = {"added": [], "removed": [], "skipped": []}
        write = self.db.batch()
        batch_ref = self._batches().document(batch_id)

        if data.get("teacherIds") is not None:
            if actor is not None and not actor.is_admin:
                raise PermissionDeniedError("Only admins can reassign teachers.")
            desired = self._require_active_teachers(data["teacherIds"])
            updated["teacherIds"] = desired
            changes["teacherIds"] = desired

        if data.get("studentIds") is not None:
            current = list(batch.get("studentIds") or [])
            desired = list(dict.fromkeys(data["studentIds"]))
            to_remove = [sid for sid in current if sid not in desired]

            # Kept members go through the planner too so one-sided links get repaired
            added, _, skipped, _ = self._plan_additions(updated, desired)
            for student_id in added:
                write.update(self._students().document(student_id), {
                    "batchIds": firestore.ArrayUnion([batch_id])
                })
            for student_id in to_remove:
                student_ref = self._students().document(student_id)
                if student_ref.get().exists:
                    write.update(student_ref, {"batchIds": firestore.ArrayRemove([batch_id])})
            if added:
                write.update(batch_ref, {"studentIds": firestore.ArrayUnion(added)})
            if to_remove:
                write.update(batch_ref, {"studentIds": firestore.ArrayRemove(to_remove)})

            kept = [sid for sid in current if sid not in to_remove]
            updated["studentIds"] = kept + [sid for sid in added if sid not in kept]
            result.update({
                "added": [sid for sid in added if sid not in current],
                "removed": to_remove,
                "skipped": skipped,
            })

        changes["updatedAt"] = datetime.utcnow().isoformat()
        write.update(batch_ref, changes)
        write.commit()

        updated["updatedAt"] = changes["updatedAt"]
        self._invalidate(batch_id)
        result["batch"] = updated
        return result

    def delete_batch(self, batch_id: str, actor=None) -> Dict[str, Any]:
        """
        Delete a batch, its attendance records, and its id from every
        member's batchIds.
        """
        batch = self.get_batch(batch_id)

        student_refs = {}
        member_query = self._students().where("batchIds", "array_contains", batch_id)
        for doc in member_query.stream():
            student_refs[doc.id] = doc.reference
        for student_id in batch.get("studentIds") or []:
            if student_id not in student_refs:
                ref = self._students().document(student_id)
                if ref.get().exists:
                    student_refs[student_id] = ref

        attendance_refs = [
            doc.reference for doc in
            self.db.collection(self.ATTENDANCE_COLLECTION).where("batchId", "==", batch_id).stream()
        ]

        operations = [("update", ref) for ref in student_refs.values()]
        operations += [("delete", ref) for ref in attendance_refs]
        operations.append(("delete", self._batches().document(batch_id)))

        for chunk in chunked(operations, FIRESTORE_BATCH_LIMIT):
            write = self.db.batch()
            for kind, ref in chunk:
                if kind == "update":
                    write.update(ref, {"batchIds": firestore.ArrayRemove([batch_id])})
                else:
                    write.delete(ref)
            write.commit()

        self._invalidate(batch_id)
        self.activity.log_for(actor, "batch_deleted", f"Deleted batch {batch.get('name')} ({batch_id})")
        print(f"[Batches] Deleted {batch_id}: {len(student_refs)} students unassigned, "
              f"{len(attendance_refs)} attendance records removed")

        return {
            "id": batch_id,
            "studentsUnassigned": len(student_refs),
            "attendanceDeleted": len(attendance_refs),
        }

    # --- Roster operations ---

    def add_students(self, batch_id: str, student_ids: List[str], actor=None) -> Dict[str, Any]:
        """
        Add students to a batch.

        Students failing a roster rule are reported in 'skipped'. When a
        single student was requested and refused, the refusal is raised.
        Existing members are reported in 'unchanged'.
        """
        if not student_ids:
            raise InvalidRequestError("No students selected.")

        batch = self.get_batch(batch_id)
        if actor is not None:
            self.ensure_can_manage(batch, actor)

        added, unchanged, skipped, errors = self._plan_additions(batch, student_ids)
        if not added and len(errors) == 1 and len(set(student_ids)) == 1:
            raise errors[0]

        if added:
            write = self.db.batch()
            write.update(self._batches().document(batch_id), {
                "studentIds": firestore.ArrayUnion(added),
                "updatedAt": datetime.utcnow().isoformat(),
            })
            for student_id in added:
                write.update(self._students().document(student_id), {
                    "batchIds": firestore.ArrayUnion([batch_id])
                })
            write.commit()
            self._invalidate(batch_id)

        return {"added": added, "unchanged": unchanged, "skipped": skipped}

    def remove_student(self, batch_id: str, student_id: str, actor=None) -> Dict[str, Any]:
        """Remove a student from a batch on both sides. Removing a non-member is a no-op."""
        batch = self.get_batch(batch_id)
        if actor is not None:
            self.ensure_can_manage(batch, actor)

        write = self.db.batch()
        write.update(self._batches().document(batch_id), {
            "studentIds": firestore.ArrayRemove([student_id]),
            "updatedAt": datetime.utcnow().isoformat(),
        })
        student_ref = self._students().document(student_id)
        if student_ref.get().exists:
            write.update(student_ref, {"batchIds": firestore.ArrayRemove([batch_id])})
        write.commit()

        self._invalidate(batch_id)
        was_member = student_id in (batch.get("studentIds") or [])
        return {"removed": [student_id] if was_member else []}

    def add_teachers(self, batch_id: str, teacher_ids: List[str], actor=None) -> Dict[str, Any]:
        if not teacher_ids:
            raise InvalidRequestError("No teachers selected.")
        batch = self.get_batch(batch_id)
        teacher_ids = self._require_active_teachers(teacher_ids)

        added = [tid for tid in teacher_ids if tid not in (batch.get("teacherIds") or [])]
        self._batches().document(batch_id).update({
            "teacherIds": firestore.ArrayUnion(teacher_ids),
            "updatedAt": datetime.utcnow().isoformat(),
        })
        self._invalidate(batch_id)
        self.activity.log_for(actor, "batch_teachers_added", f"Assigned {len(added)} teachers to {batch.get('name')}")
        return {"added": added}

    def remove_teacher(self, batch_id: str, teacher_id: str, actor=None) -> Dict[str, Any]:
        batch = self.get_batch(batch_id)
        self._batches().document(batch_id).update({
            "teacherIds": firestore.ArrayRemove([teacher_id]),
            "updatedAt": datetime.utcnow().isoformat(),
        })
        self._invalidate(batch_id)
        was_member = teacher_id in (batch.get("teacherIds") or [])
        return {"removed": [teacher_id] if was_member else []}

    # --- Self enrollment ---

    def enroll_in_transaction(self, transaction, batch_id: str, student_id: str) -> Dict[str, Any]:
        """
        Enrollment body, run inside a Firestore transaction.

        All reads happen before the two writes.
        """
        batch_ref = self._batches().document(batch_id)
        student_ref = self._students().document(student_id)

        batch = self._snapshot(batch_ref.get(transaction=transaction))
        student = self._snapshot(student_ref.get(transaction=transaction))

        if student is None:
            raise NotFoundError("Student not found.")
        if batch is None:
            raise NotFoundError("Batch not found.")
        if batch.get("status") == BatchStatus.COMPLETED.value:
            raise BatchClosedError("This batch has already been completed.")

        others = self._other_batches(student, batch_id, transaction=transaction)
        self.check_student_can_join(batch, student, others)

        transaction.update(student_ref, {"batchIds": firestore.ArrayUnion([batch_id])})
        transaction.update(batch_ref, {"studentIds": firestore.ArrayUnion([student_id])})
        return batch

    def enroll(self, batch_id: str, student_id: str) -> Dict[str, Any]:
        """Self-enroll a student in a batch atomically."""
        transaction = self.db.transaction()
        batch = firestore.transactional(self.enroll_in_transaction)(transaction, batch_id, student_id)

        self._invalidate(batch_id)
        print(f"[Batches] Student {student_id} enrolled in {batch_id}")
        return batch

    # --- Status maintenance ---

    def refresh_statuses(self, today: Optional[date] = None) -> int:
        """
        Move batches along Scheduled -> Ongoing -> Completed from their dates.

        Returns:
            Number of batches whose status changed
        """
        updates = []
        for doc in self._batches().stream():
            batch = doc.to_dict()
            if BatchScheduleManager.needs_status_update(batch, today):
                updates.append((doc.reference, BatchScheduleManager.status_for_batch(batch, today)))

        for chunk in chunked(updates, FIRESTORE_BATCH_LIMIT):
            write = self.db.batch()
            for ref, status in chunk:
                write.update(ref, {"status": status, "updatedAt": datetime.utcnow().isoformat()})
            write.commit()

        if updates:
            self._invalidate()
        print(f"[Batches] Status refresh: {len(updates)} batches updated")
        return len(updates)


_batch_service: Optional[BatchService] = None


def get_batch_service() -> BatchService:
    """Get or create the batch service singleton."""
    global _batch_service
    if _batch_service is None:
        initialize_firebase()
        _batch_service = BatchService()
    return _batch_service
