"""
Tests for tasks/scheduler.py and tasks/seed.py
"""

import asyncio
import pytest
from datetime import date
from unittest.mock import MagicMock, patch

from firebase_admin import auth

from core.constants import UserRole
from services.batches import validate_batch
from tasks.scheduler import TaskScheduler, run_once
from tasks.seed import PortalSeeder, sample_batches


class TestRunOnce:
    """Tests for running maintenance tasks from the command line"""

    def test_batch_status(self):
        service = MagicMock()
        service.refresh_statuses.return_value = 3
        with patch('tasks.scheduler.get_batch_service', return_value=service):
            run_once("batch-status")
        service.refresh_statuses.assert_called_once_with()

    def test_activity_uses_retention_window(self):
        service = MagicMock()
        with patch('tasks.scheduler.get_activity_service', return_value=service), \
                patch('tasks.scheduler.ACTIVITY_RETENTION_DAYS', 45):
            run_once("activity")
        service.prune.assert_called_once_with(45)

    def test_reset_codes(self):
        service = MagicMock()
        with patch('tasks.scheduler.get_user_service', return_value=service):
            run_once("reset-codes")
        service.purge_expired_reset_codes.assert_called_once()


class TestScheduledJobs:
    """Jobs log failures instead of stopping the scheduler"""

    def test_refresh_failure_is_reported(self, capsys):
        service = MagicMock()
        service.refresh_statuses.side_effect = Exception("firestore down")

        with patch('tasks.scheduler.get_batch_service', return_value=service):
            asyncio.run(TaskScheduler().refresh_batch_statuses())

        assert "Batch status refresh failed" in capsys.readouterr().out

    def test_purge_runs_in_executor(self, capsys):
        service = MagicMock()
        service.purge_expired_reset_codes.return_value = 2

        with patch('tasks.scheduler.get_user_service', return_value=service):
            asyncio.run(TaskScheduler().purge_reset_codes())

        assert "2 codes deleted" in capsys.readouterr().out


class TestSeed:
    """Tests for the seed data and the seeder's skip/force handling"""

    def test_sample_batches_are_valid(self):
        for batch in sample_batches(date(2025, 6, 2)):
            fields = {k: v for k, v in batch.items() if k not in ("teacher_emails", "student_ids")}
            validate_batch(fields)

    @pytest.fixture
    def seeder(self):
        with patch('tasks.seed.get_firestore_client', return_value=MagicMock()), \
                patch('tasks.seed.get_activity_service', return_value=MagicMock()), \
                patch('tasks.seed.UserService') as users, \
                patch('tasks.seed.StudentService'), \
                patch('tasks.seed.BatchService'):
            seeder = PortalSeeder()
            seeder.users = users.return_value
            yield seeder

    def test_existing_account_is_skipped(self, seeder):
        with patch('tasks.seed.auth.get_user_by_email', return_value=MagicMock(uid="host-uid")):
            seeder.seed_host()

        seeder.users.create_host.assert_not_called()
        assert seeder.stats["skipped"] == 1

    def test_force_replaces_account(self, seeder):
        seeder.force = True
        with patch('tasks.seed.auth.get_user_by_email', return_value=MagicMock(uid="host-uid")), \
                patch('tasks.seed.auth.delete_user') as delete_user:
            seeder.seed_host()

        delete_user.assert_called_once_with("host-uid")
        seeder.users.create_host.assert_called_once()
        assert seeder.stats["replaced"] == 1

    def test_staff_are_registered_and_approved(self, seeder):
        seeder.users.register_staff.return_value = {"id": "t1"}
        not_found = auth.UserNotFoundError("missing")

        with patch('tasks.seed.auth.get_user_by_email', side_effect=not_found):
            seeder.seed_staff(UserRole.TEACHER, {
                "name": "Ananya Sen", "email": "a@example.com", "department": "cse", "username": "ananya"
            })

        seeder.users.approve.assert_called_once_with(UserRole.TEACHER, "t1", "ananya")
        assert seeder.stats["created"] == 1
