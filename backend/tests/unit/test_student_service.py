"""
Tests for services/students.py - registration, bulk upload, updates, promotion and deletion
"""

import pytest
from unittest.mock import MagicMock, patch

from core.exceptions import ConflictError, InvalidRequestError, NotFoundError
from services.students import StudentService


@pytest.fixture
def mock_db():
    """Create a mock Firestore client"""
    with patch('services.students.get_firestore_client') as mock:
        db = MagicMock()
        mock.return_value = db
        yield db


@pytest.fixture
def service(mock_db, mock_activity):
    """Create StudentService with mocked database and no cache"""
    return StudentService(use_cache=False, activity=mock_activity)


@pytest.fixture
def registration():
    return {
        "studentId": "AEC/2022/0002",
        "name": "Priya Ghosh",
        "email": "Priya@Example.com",
        "rollNumber": "22CSE002",
        "registrationNumber": "REG22002",
        "department": "CSE",
        "section": "A",
        "admissionYear": 2022,
        "currentYear": 3,
        "phoneNumber": "9000000002",
        "whatsappNumber": None,
    }


class TestQueries:
    """Tests for reading students"""

    def test_get_student_not_found(self, service, mock_db, make_doc):
        mock_db.collection.return_value.document.return_value.get.return_value = make_doc("s1")
        with pytest.raises(NotFoundError):
            service.get_student("s1")

    def test_list_students_filters_and_searches(self, service, mock_db, make_doc):
        query = mock_db.collection.return_value.where.return_value.where.return_value
        query.stream.return_value = [
            make_doc("s2", {"name": "Priya Ghosh", "studentId": "AEC/2022/0002"}),
            make_doc("s1", {"name": "Arjun Roy", "studentId": "AEC/2022/0001"}),
        ]

        students = service.list_students(department="CSE", batch_id="batch1", search="priya")

        assert [s["id"] for s in students] == ["s2"]
        mock_db.collection.return_value.where.assert_called_with("department", "==", "cse")
        mock_db.collection.return_value.where.return_value.where.assert_called_with(
            "batchIds", "array_contains", "batch1"
        )

    def test_check_existence_requires_a_value(self, service):
        with pytest.raises(InvalidRequestError):
            service.check_existence()

    def test_check_existence_conflict(self, service, mock_db, make_doc):
        mock_db.collection.return_value.where.return_value.limit.return_value.stream.return_value = [
            make_doc("s1", {})
        ]
        with pytest.raises(ConflictError):
            service.check_existence(student_id="AEC/2022/0001")


class TestRegistration:
    """Tests for self registration and bulk upload"""

    def test_register_creates_auth_user_and_profile(self, service, mock_db, registration):
        mock_db.collection.return_value.where.return_value.limit.return_value.stream.return_value = []

        with patch('services.students.auth.create_user', return_value=MagicMock(uid="uid-new")):
            student = service.register_student(registration, "secret123")

        assert student["id"] == "uid-new"
        assert student["email"] == "priya@example.com"
        assert student["department"] == "cse"
        assert student["status"] == "active"
        assert student["batchIds"] == []
        assert student["profileEditCount"] == 0
        mock_db.collection.return_value.document.assert_called_with("uid-new")

    def test_register_rolls_back_auth_user(self, service, mock_db, registration):
        mock_db.collection.return_value.where.return_value.limit.return_value.stream.return_value = []
        mock_db.collection.return_value.document.return_value.set.side_effect = Exception("write failed")

        with patch('services.students.auth.create_user', return_value=MagicMock(uid="uid-new")), \
                patch('services.students.auth.delete_user') as delete_user:
            with pytest.raises(Exception):
                service.register_student(registration, "secret123")

        delete_user.assert_called_once_with("uid-new")

    def test_bulk_create_skips_duplicates_and_missing(self, service, mock_db, make_doc):
        mock_db.collection.return_value.stream.return_value = [
            make_doc("s0", {"rollNumber": "22CSE000", "email": "old@example.com"})
        ]
        row = {
            "Student Name": "Arjun Roy", "Student ID": "AEC/2022/0001",
            "University Roll No.": "22CSE001", "University Registration No.": "REG1",
            "Department": "CSE", "Admission Year": 2022, "Current Academic Year": 3,
            "Email": "arjun@example.com", "Phone No.": "9000000001",
        }
        rows = [
            row,
            dict(row, **{"Email": "other@example.com"}),          # roll repeated in the upload
            dict(row, **{"University Roll No.": "22CSE000"}),     # roll already stored
            {"Student Name": "No Data"},
        ]

        with patch('services.students.auth.create_user', return_value=MagicMock(uid="uid-1")) as create_user:
            result = service.bulk_create(rows)

        assert result["successCount"] == 1
        assert result["errorCount"] == 3
        assert create_user.call_count == 1
        assert any("missing required data" in e for e in result["errors"])


class TestUpdates:
    """Tests for profile updates and promotion"""

    def test_self_edit_counts_edits(self, service, mock_db, make_doc):
        doc_ref = mock_db.collection.return_value.document.return_value
        doc_ref.get.return_value = make_doc("s1", {"name": "Arjun", "profileEditCount": 2})

        student = service.update_student("s1", {"phoneNumber": "9000000009"}, self_edit=True)

        written = doc_ref.update.call_args[0][0]
        assert "profileEditCount" in written
        assert student["profileEditCount"] == 3
        assert student["phoneNumber"] == "9000000009"

    def test_self_edit_cannot_change_department(self, service, mock_db, make_doc):
        mock_db.collection.return_value.document.return_value.get.return_value = make_doc("s1", {"name": "Arjun"})
        with pytest.raises(InvalidRequestError):
            service.update_student("s1", {"department": "ece"}, self_edit=True)

    def test_staff_edit_lowercases_department(self, service, mock_db, make_doc):
        doc_ref = mock_db.collection.return_value.document.return_value
        doc_ref.get.return_value = make_doc("s1", {"name": "Arjun"})

        service.update_student("s1", {"department": "ECE"})

        written = doc_ref.update.call_args[0][0]
        assert written["department"] == "ece"
        assert "profileEditCount" not in written

    def test_promote_to_year(self, service, mock_db):
        result = service.promote(["s1", "s2"], "promote", target_year=4)

        write = mock_db.batch.return_value
        assert write.update.call_count == 2
        assert write.update.call_args[0][1]["currentYear"] == 4
        assert result["count"] == 2

    def test_pass_out(self, service, mock_db):
        service.promote(["s1"], "pass_out")
        assert mock_db.batch.return_value.update.call_args[0][1]["status"] == "passed_out"

    @pytest.mark.parametrize("action,year", [("promote", None), ("promote", 5), ("graduate", None)])
    def test_promote_rejects_bad_input(self, service, action, year):
        with pytest.raises(InvalidRequestError):
            service.promote(["s1"], action, target_year=year)

    def test_promote_requires_students(self, service):
        with pytest.raises(InvalidRequestError):
            service.promote([], "pass_out")


class TestDeletion:
    """Tests for deleting students"""

    def test_delete_removes_from_batches_and_auth(self, service, mock_db, make_doc):
        mock_db.collection.return_value.document.return_value.get.return_value = make_doc(
            "s1", {"uid": "uid-s1", "name": "Arjun", "batchIds": ["b1", "b2"]}
        )
        mock_db.collection.return_value.where.return_value.stream.return_value = [make_doc("b1", {})]
        write = mock_db.batch.return_value

        with patch('services.students.auth.delete_user') as delete_user:
            result = service.delete_student("s1")

        # b1 from the query, b2 from the student's own batchIds
        assert result["batchesUpdated"] == 2
        assert write.update.call_count == 2
        write.delete.assert_called_once()
        delete_user.assert_called_once_with("uid-s1")

    def test_delete_passed_out_reports_counts(self, service, mock_db, make_doc):
        students_query = mock_db.collection.return_value.where.return_value
        students_query.stream.return_value = [
            make_doc("s1", {"uid": "u1", "name": "A", "status": "passed_out"}),
            make_doc("s2", {"uid": "u2", "name": "B", "status": "passed_out"}),
        ]
        mock_db.collection.return_value.stream.return_value = [
            make_doc("b1", {"studentIds": ["s1", "s9"]}),
            make_doc("b2", {"studentIds": ["s9"]}),
        ]
        auth_result = MagicMock(success_count=1, failure_count=1, errors=[MagicMock(index=1, reason="gone")])

        with patch('services.students.auth.delete_users', return_value=auth_result) as delete_users:
            result = service.delete_passed_out()

        assert result["deleted"] == 2
        assert result["authDeleted"] == 1
        assert result["authFailures"] == 1
        delete_users.assert_called_once_with(["u1", "u2"])
        write = mock_db.batch.return_value
        assert write.update.call_count == 1
        assert write.delete.call_count == 2

    def test_delete_passed_out_with_none(self, service, mock_db):
        mock_db.collection.return_value.where.return_value.stream.return_value = []
        assert service.delete_passed_out()["deleted"] == 0
