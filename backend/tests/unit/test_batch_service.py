"""
Tests for services/batches.py - batch validation, rosters, enrollment and status upkeep
"""

import pytest
from datetime import date
from unittest.mock import MagicMock, patch

from firebase_admin import firestore

from core.constants import UserRole
from core.exceptions import (
    AlreadyEnrolledError,
    BatchClosedError,
    DepartmentMismatchError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
    ScheduleConflictError,
)
from services.batches import BatchService, batch_departments, can_manage_batch, validate_batch


@pytest.fixture
def mock_db():
    """Create a mock Firestore client"""
    with patch('services.batches.get_firestore_client') as mock:
        db = MagicMock()
        mock.return_value = db
        yield db


@pytest.fixture
def store(mock_db, make_doc):
    """
    Route collection and document reads to in-memory dicts.

    Tests fill store[collection][doc_id]; queries built with where()
    return nothing unless a test sets them up. The same document id
    always gives back the same ref, so writes can be matched to refs.
    """
    data = {}
    collections = {}
    refs = {}

    def collection(name):
        if name not in collections:
            col = MagicMock(name=name)

            def document(doc_id=None, name=name):
                doc_id = doc_id or "new-batch"
                if (name, doc_id) not in refs:
                    ref = MagicMock(name=f"{name}/{doc_id}")
                    ref.id = doc_id
                    ref.get.side_effect = lambda transaction=None, ref=ref: make_doc(
                        ref.id, data.setdefault(name, {}).get(ref.id)
                    )
                    refs[(name, doc_id)] = ref
                return refs[(name, doc_id)]

            col.document.side_effect = document
            col.stream.side_effect = lambda: [
                make_doc(doc_id, doc) for doc_id, doc in data.setdefault(name, {}).items()
            ]
            collections[name] = col
        return collections[name]

    mock_db.collection.side_effect = collection
    return data


def writes_to(write, ref):
    """Field dicts passed to write.update() for one document ref"""
    return [c[0][1] for c in write.update.call_args_list if c[0][0] is ref]


def union_values(updates, field, transform=firestore.ArrayUnion):
    """Values of every ArrayUnion (or ArrayRemove) sent for a field"""
    values = []
    for update in updates:
        if isinstance(update.get(field), transform):
            values.extend(update[field].values)
    return values


@pytest.fixture
def service(mock_db, mock_activity):
    """Create BatchService with mocked database and no cache"""
    return BatchService(use_cache=False, activity=mock_activity)


@pytest.fixture
def batch_fields():
    return {
        "name": "Aptitude Foundations",
        "topic": "Quantitative Aptitude",
        "departments": ["CSE", "cse", "ECE"],
        "startDate": "2025-01-01",
        "endDate": "2025-03-31",
        "daysOfWeek": ["mon", "Wednesday"],
        "startTime": "10:00",
        "endTime": "12:00",
    }


class TestValidateBatch:
    """Tests for batch field validation"""

    def test_normalizes_departments_and_days(self, batch_fields):
        data = validate_batch(batch_fields)
        assert data["departments"] == ["cse", "ece"]
        assert data["daysOfWeek"] == ["Monday", "Wednesday"]
        assert data["startDate"] == "2025-01-01"

    @pytest.mark.parametrize("field,value", [
        ("name", "AB"),
        ("topic", ""),
        ("departments", []),
        ("departments", ["astrology"]),
        ("endDate", "2024-12-31"),
        ("startDate", "01/01/2025"),
        ("daysOfWeek", []),
        ("daysOfWeek", ["Sunday"]),
        ("endTime", "09:00"),
        ("startTime", "25:00"),
        ("roomNumber", "R" * 21),
    ])
    def test_rejects_invalid_field(self, batch_fields, field, value):
        batch_fields[field] = value
        with pytest.raises(InvalidRequestError):
            validate_batch(batch_fields)

    def test_second_half_needs_both_times(self, batch_fields):
        batch_fields["startTimeSecondHalf"] = "13:00"
        with pytest.raises(InvalidRequestError):
            validate_batch(batch_fields)

    def test_second_half_must_follow_first(self, batch_fields):
        batch_fields["startTimeSecondHalf"] = "11:00"
        batch_fields["endTimeSecondHalf"] = "13:00"
        with pytest.raises(InvalidRequestError):
            validate_batch(batch_fields)

    def test_valid_second_half(self, batch_fields):
        batch_fields["startTimeSecondHalf"] = "13:00"
        batch_fields["endTimeSecondHalf"] = "15:00"
        assert validate_batch(batch_fields)["endTimeSecondHalf"] == "15:00"


class TestBatchAccess:
    """Tests for who may manage a batch"""

    def test_legacy_single_department(self):
        assert batch_departments({"department": "CSE"}) == ["cse"]
        assert batch_departments({}) == []

    def test_admin_and_host_manage_everything(self, sample_batch, make_user):
        assert can_manage_batch(sample_batch, make_user(UserRole.ADMIN)) is True
        assert can_manage_batch(sample_batch, make_user(UserRole.HOST)) is True

    def test_teacher_manages_own_batches(self, sample_batch, make_user):
        assert can_manage_batch(sample_batch, make_user(UserRole.TEACHER, profile_id="teacher1")) is True
        assert can_manage_batch(sample_batch, make_user(UserRole.TEACHER, profile_id="teacher2")) is False

    def test_student_never_manages(self, sample_batch, make_user):
        assert can_manage_batch(sample_batch, make_user(UserRole.STUDENT, profile_id="teacher1")) is False

    def test_list_for_student_shows_own_batches(self, service, store, sample_batch, make_user):
        store["batches"] = {
            "batch1": sample_batch,
            "batch2": dict(sample_batch, studentIds=["someone"]),
        }
        batches = service.list_for_user(make_user(UserRole.STUDENT, profile_id="student1"))
        assert [b["id"] for b in batches] == ["batch1"]


class TestJoinRules:
    """Tests for the roster rules applied to a single student"""

    def test_missing_student(self, service, sample_batch):
        with pytest.raises(NotFoundError):
            service.check_student_can_join(sample_batch, None, [])

    def test_inactive_student(self, service, sample_batch, sample_student):
        student = dict(sample_student, id="student2", status="passed_out")
        with pytest.raises(InvalidRequestError):
            service.check_student_can_join(sample_batch, student, [])

    def test_department_mismatch(self, service, sample_batch, sample_student):
        student = dict(sample_student, id="student2", department="me")
        with pytest.raises(DepartmentMismatchError):
            service.check_student_can_join(sample_batch, student, [])

    def test_already_member(self, service, sample_batch, sample_student):
        student = dict(sample_student, id="student1")
        with pytest.raises(AlreadyEnrolledError):
            service.check_student_can_join(sample_batch, student, [])

    def test_schedule_conflict(self, service, sample_batch, sample_student):
        student = dict(sample_student, id="student2", batchIds=["batch2"])
        clash = dict(sample_batch, id="batch2", name="Coding Club", startTime="11:00", endTime="13:00")

        with pytest.raises(ScheduleConflictError) as exc_info:
            service.check_student_can_join(sample_batch, student, [clash])
        assert exc_info.value.conflicting_batch["id"] == "batch2"

    def test_completed_batch_does_not_conflict(self, service, sample_batch, sample_student):
        student = dict(sample_student, id="student2", batchIds=["batch2"])
        done = dict(sample_batch, id="batch2", status="Completed")
        service.check_student_can_join(sample_batch, student, [done])


class TestRosterChanges:
    """Tests for creating batches and adding or removing members"""

    def test_teacher_is_assigned_to_created_batch(self, service, mock_db, store, batch_fields, sample_student, make_user):
        store["teachers"] = {"teacher1": {"name": "Ananya", "status": "active"}}
        store["students"] = {
            "student2": sample_student,
            "student3": dict(sample_student, name="Rahul", department="me"),
        }
        data = dict(batch_fields, studentIds=["student2", "student3"])

        result = service.create_batch(data, actor=make_user(UserRole.TEACHER, profile_id="teacher1"))

        assert result["batch"]["teacherIds"] == ["teacher1"]
        assert result["added"] == ["student2"]
        assert result["skipped"][0]["studentId"] == "student3"
        write = mock_db.batch.return_value
        write.set.assert_called_once()
        assert write.update.call_count == 1
        write.commit.assert_called_once()

    def test_create_rejects_inactive_teacher(self, service, store, batch_fields):
        store["teachers"] = {"teacher9": {"status": "pending_approval"}}
        with pytest.raises(InvalidRequestError):
            service.create_batch(dict(batch_fields, teacherIds=["teacher9"]))

    def test_single_refusal_is_raised(self, service, store, sample_batch, sample_student):
        store["batches"] = {"batch1": sample_batch}
        store["students"] = {"student2": dict(sample_student, department="me")}

        with pytest.raises(DepartmentMismatchError):
            service.add_students("batch1", ["student2"])

    def test_adding_existing_member_is_noop(self, service, mock_db, store, sample_batch, sample_student):
        store["batches"] = {"batch1": sample_batch}
        store["students"] = {"student1": dict(sample_student, batchIds=["batch1"])}

        result = service.add_students("batch1", ["student1"])

        assert result == {"added": [], "unchanged": ["student1"], "skipped": []}
        mock_db.batch.return_value.commit.assert_not_called()

    def test_one_sided_membership_is_repaired(self, service, mock_db, store, sample_batch, sample_student):
        store["batches"] = {"batch1": sample_batch}
        store["students"] = {"student1": dict(sample_student, batchIds=[])}

        result = service.add_students("batch1", ["student1"])

        assert result["added"] == ["student1"]
        write = mock_db.batch.return_value
        student_ref = mock_db.collection("students").document("student1")
        batch_ref = mock_db.collection("batches").document("batch1")
        assert union_values(writes_to(write, student_ref), "batchIds") == ["batch1"]
        assert union_values(writes_to(write, batch_ref), "studentIds") == ["student1"]
        write.commit.assert_called_once()

    def test_conflicts_reported_when_adding_several(self, service, mock_db, store, sample_batch, sample_student):
        clash = dict(sample_batch, name="Coding Club", startTime="11:00", endTime="13:00", studentIds=["student3"])
        store["batches"] = {"batch1": sample_batch, "batch2": clash}
        store["students"] = {
            "student3": dict(sample_student, name="Rahul", batchIds=["batch2"]),
            "student4": dict(sample_student, name="Sneha"),
        }

        result = service.add_students("batch1", ["student3", "student4"])

        assert result["added"] == ["student4"]
        assert result["skipped"][0]["conflictingBatch"] == {"id": "batch2", "name": "Coding Club"}
        assert mock_db.batch.return_value.update.call_count == 2

    def test_unassigned_teacher_cannot_add(self, service, store, sample_batch, make_user):
        store["batches"] = {"batch1": sample_batch}
        with pytest.raises(PermissionDeniedError):
            service.add_students("batch1", ["student2"], actor=make_user(UserRole.TEACHER, profile_id="teacher2"))

    def test_add_requires_students(self, service):
        with pytest.raises(InvalidRequestError):
            service.add_students("batch1", [])

    def test_remove_non_member_is_noop(self, service, store, sample_batch):
        store["batches"] = {"batch1": sample_batch}
        assert service.remove_student("batch1", "nobody") == {"removed": []}

    def test_teacher_cannot_override_status(self, service, store, sample_batch, make_user):
        store["batches"] = {"batch1": sample_batch}
        with pytest.raises(PermissionDeniedError):
            service.update_batch("batch1", {"status": "Completed"}, actor=make_user(UserRole.TEACHER, profile_id="teacher1"))

    def test_rename_batch(self, service, mock_db, store, sample_batch):
        store["batches"] = {"batch1": sample_batch}

        result = service.update_batch("batch1", {"name": "Aptitude Advanced"})

        assert result["batch"]["name"] == "Aptitude Advanced"
        changes = mock_db.batch.return_value.update.call_args[0][1]
        assert changes["name"] == "Aptitude Advanced"
        assert "status" not in changes


class TestRosterUpdates:
    """Tests for roster diffs applied through update_batch and teacher assignment"""

    def test_student_diff_written_on_both_sides(self, service, mock_db, store, sample_batch, sample_student):
        store["batches"] = {"batch1": sample_batch}
        store["students"] = {
            "student1": dict(sample_student, name="Arjun Roy", batchIds=["batch1"]),
            "student2": sample_student,
        }

        result = service.update_batch("batch1", {"studentIds": ["student2"]})

        assert result["added"] == ["student2"]
        assert result["removed"] == ["student1"]
        assert result["batch"]["studentIds"] == ["student2"]

        write = mock_db.batch.return_value
        batch_updates = writes_to(write, mock_db.collection("batches").document("batch1"))
        assert union_values(batch_updates, "studentIds") == ["student2"]
        assert union_values(batch_updates, "studentIds", firestore.ArrayRemove) == ["student1"]

        added_ref = mock_db.collection("students").document("student2")
        removed_ref = mock_db.collection("students").document("student1")
        assert union_values(writes_to(write, added_ref), "batchIds") == ["batch1"]
        assert union_values(writes_to(write, removed_ref), "batchIds", firestore.ArrayRemove) == ["batch1"]
        write.commit.assert_called_once()

    def test_kept_member_missing_back_link_is_repaired(self, service, mock_db, store, sample_batch, sample_student):
        store["batches"] = {"batch1": sample_batch}
        store["students"] = {"student1": dict(sample_student, batchIds=[])}

        result = service.update_batch("batch1", {"studentIds": ["student1"]})

        assert result["added"] == []
        assert result["removed"] == []
        student_ref = mock_db.collection("students").document("student1")
        assert union_values(writes_to(mock_db.batch.return_value, student_ref), "batchIds") == ["batch1"]

    def test_teacher_ids_replaced_by_admin(self, service, mock_db, store, sample_batch, make_user):
        store["batches"] = {"batch1": sample_batch}
        store["teachers"] = {"teacher2": {"name": "Ravi", "status": "active"}}

        result = service.update_batch("batch1", {"teacherIds": ["teacher2"]}, actor=make_user(UserRole.ADMIN))

        assert result["batch"]["teacherIds"] == ["teacher2"]
        changes = mock_db.batch.return_value.update.call_args[0][1]
        assert changes["teacherIds"] == ["teacher2"]

    def test_teacher_cannot_reassign_teachers(self, service, store, sample_batch, make_user):
        store["batches"] = {"batch1": sample_batch}
        store["teachers"] = {"teacher2": {"status": "active"}}

        with pytest.raises(PermissionDeniedError):
            service.update_batch(
                "batch1", {"teacherIds": ["teacher2"]},
                actor=make_user(UserRole.TEACHER, profile_id="teacher1")
            )

    def test_schedule_change_that_double_books_a_member(self, service, mock_db, store, sample_batch, sample_student):
        friday_club = dict(sample_batch, name="Coding Club", daysOfWeek=["Friday"], studentIds=["student1"])
        store["batches"] = {"batch1": sample_batch, "batch2": friday_club}
        store["students"] = {"student1": dict(sample_student, batchIds=["batch1", "batch2"])}

        with pytest.raises(ScheduleConflictError) as exc_info:
            service.update_batch("batch1", {"daysOfWeek": ["Friday"]})

        assert exc_info.value.conflicting_batch["id"] == "batch2"
        mock_db.batch.return_value.commit.assert_not_called()

    def test_eligible_students(self, service, mock_db, store, sample_batch, sample_student, make_doc):
        store["batches"] = {"batch1": sample_batch}
        query = mock_db.collection("students").where
        query.return_value.stream.return_value = [
            make_doc("student1", dict(sample_student, name="Arjun Roy")),
            make_doc("student2", sample_student),
            make_doc("student3", {"name": "Rahul Das", "department": "ece", "studentId": "AEC/2022/0003"}),
            make_doc("student4", dict(sample_student, name="Sneha Paul", status="passed_out")),
        ]

        eligible = service.eligible_students("batch1")

        query.assert_called_once_with("department", "in", ["cse", "ece"])
        assert [s["id"] for s in eligible] == ["student2", "student3"]
        assert [s["id"] for s in service.eligible_students("batch1", search="rahul")] == ["student3"]

    def test_add_and_remove_teachers(self, service, mock_db, store, sample_batch):
        store["batches"] = {"batch1": sample_batch}
        store["teachers"] = {
            "teacher1": {"status": "active"},
            "teacher2": {"status": "active"},
        }
        batch_ref = mock_db.collection("batches").document("batch1")

        assert service.add_teachers("batch1", ["teacher1", "teacher2"]) == {"added": ["teacher2"]}
        assert batch_ref.update.call_args[0][0]["teacherIds"].values == ["teacher1", "teacher2"]

        assert service.remove_teacher("batch1", "teacher1") == {"removed": ["teacher1"]}
        removal = batch_ref.update.call_args[0][0]["teacherIds"]
        assert isinstance(removal, firestore.ArrayRemove)
        assert removal.values == ["teacher1"]

    def test_add_teachers_requires_active_teachers(self, service, store, sample_batch):
        store["batches"] = {"batch1": sample_batch}
        store["teachers"] = {"teacher9": {"status": "suspended"}}
        with pytest.raises(InvalidRequestError):
            service.add_teachers("batch1", ["teacher9"])


class TestEnrollment:
    """Tests for transactional self enrollment"""

    def test_completed_batch_is_closed(self, service, store, sample_batch, sample_student):
        store["batches"] = {"batch1": dict(sample_batch, status="Completed")}
        store["students"] = {"student2": sample_student}

        with pytest.raises(BatchClosedError):
            service.enroll_in_transaction(MagicMock(), "batch1", "student2")

    def test_enrollment_updates_both_sides(self, service, store, sample_batch, sample_student):
        store["batches"] = {"batch1": sample_batch}
        store["students"] = {"student2": sample_student}
        transaction = MagicMock()

        batch = service.enroll_in_transaction(transaction, "batch1", "student2")

        assert batch["id"] == "batch1"
        assert transaction.update.call_count == 2

    def test_missing_batch(self, service, store, sample_student):
        store["students"] = {"student2": sample_student}
        with pytest.raises(NotFoundError):
            service.enroll_in_transaction(MagicMock(), "batch9", "student2")


class TestDeletionAndStatus:
    """Tests for batch deletion and the daily status refresh"""

    def test_delete_commits_in_chunks(self, service, mock_db, store, sample_batch, sample_student, make_doc):
        store["batches"] = {"batch1": sample_batch}
        store["students"] = {"student1": sample_student}
        attendance = mock_db.collection("attendanceRecords")
        attendance.where.return_value.stream.return_value = [make_doc(f"a{i}", {}) for i in range(600)]

        result = service.delete_batch("batch1")

        assert result == {"id": "batch1", "studentsUnassigned": 1, "attendanceDeleted": 600}
        write = mock_db.batch.return_value
        assert write.commit.call_count == 2
        assert write.update.call_count == 1
        assert write.delete.call_count == 601

    def test_refresh_statuses(self, service, mock_db, store, sample_batch):
        store["batches"] = {
            "batch1": dict(sample_batch, status="Ongoing"),
            "batch2": dict(sample_batch, status="Completed"),
            "batch3": dict(sample_batch, startDate="2025-07-01", endDate="2025-08-01", status="Scheduled"),
        }

        changed = service.refresh_statuses(today=date(2025, 6, 1))

        assert changed == 1
        update = mock_db.batch.return_value.update.call_args[0][1]
        assert update["status"] == "Completed"

    def test_refresh_never_reopens_completed_batch(self, service, mock_db, store, sample_batch):
        store["batches"] = {"batch1": dict(sample_batch, status="Completed")}

        changed = service.refresh_statuses(today=date(2025, 2, 1))

        assert changed == 0
        mock_db.batch.return_value.update.assert_not_called()
