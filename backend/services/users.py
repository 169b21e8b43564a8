"""
Staff Account Service

Handles teacher, admin and host accounts: listing, profile updates,
registration by management, the approval workflow, and password reset
codes for every role.

Account lifecycle for teachers and admins:
    register -> pending_approval (auth user disabled)
    approve  -> active (auth user enabled, username assigned)
    reject / suspend -> auth user disabled
"""

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from firebase_admin import auth, firestore

from core.config import (
    get_firestore_client,
    initialize_firebase,
    IS_PRODUCTION,
    PASSWORD_RESET_CODE_TTL_MINUTES,
)
from core.constants import (
    ApprovalStatus,
    UserRole,
    ROLE_COLLECTIONS,
    BATCHES_COLLECTION,
    PASSWORD_RESETS_COLLECTION,
    FIRESTORE_BATCH_LIMIT,
    MIN_PASSWORD_LENGTH,
)
from core.exceptions import (
    AccountNotActiveError,
    ConflictError,
    InvalidRequestError,
    InvalidResetCodeError,
    NotFoundError,
)
from services.cache import get_cache, is_cache_available
from services.activity import get_activity_service

MAX_RESET_ATTEMPTS = 5

# Roles that go through the approval workflow
APPROVAL_ROLES = (UserRole.TEACHER, UserRole.ADMIN)


class UserService:
    """Service for staff and host accounts in Firestore and Firebase Auth."""

    TEACHERS_COLLECTION = ROLE_COLLECTIONS[UserRole.TEACHER]
    ADMINS_COLLECTION = ROLE_COLLECTIONS[UserRole.ADMIN]
    HOSTS_COLLECTION = ROLE_COLLECTIONS[UserRole.HOST]
    BATCHES_COLLECTION = BATCHES_COLLECTION
    PASSWORD_RESETS_COLLECTION = PASSWORD_RESETS_COLLECTION

    def __init__(self, use_cache: bool = True, activity=None):
        self.db = get_firestore_client()
        self._use_cache = use_cache and is_cache_available()
        self._cache = get_cache() if self._use_cache else None
        self.activity = activity if activity is not None else get_activity_service()

    # --- Helpers ---

    def _collection(self, role: UserRole):
        return self.db.collection(ROLE_COLLECTIONS[UserRole(role)])

    def _get(self, role: UserRole, user_id: str) -> Optional[Dict[str, Any]]:
        doc = self._collection(role).document(user_id).get()
        if doc.exists:
            data = doc.to_dict()
            data["id"] = doc.id
            return data
        return None

    def _require(self, role: UserRole, user_id: str) -> Dict[str, Any]:
        user = self._get(role, user_id)
        if user is None:
            raise NotFoundError(f"{UserRole(role).value.capitalize()} not found.")
        return user

    def _list(self, role: UserRole, status: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self._collection(role)
        if status:
            query = query.where("status", "==", status)

        users = []
        for doc in query.stream():
            data = doc.to_dict()
            data["id"] = doc.id
            users.append(data)
        users.sort(key=lambda u: (u.get("name") or "").lower())
        return users

    def _invalidate(self):
        if self._use_cache and self._cache:
            self._cache.invalidate_people()

    def _set_auth_disabled(self, user: Dict[str, Any], disabled: bool):
        """Enable or disable the linked Firebase Auth user, if there is one."""
        uid = user.get("uid")
        if not uid:
            return
        try:
            auth.update_user(uid, disabled=disabled)
        except auth.UserNotFoundError:
            print(f"[Users] Auth user {uid} not found while setting disabled={disabled}")

    def _delete_auth_user(self, uid: Optional[str]):
        if not uid:
            return
        try:
            auth.delete_user(uid)
        except auth.UserNotFoundError:
            print(f"[Users] Auth user {uid} already deleted")

    def _update(self, role: UserRole, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        user = self._require(role, user_id)

        update_data = {k: v for k, v in data.items() if v is not None}
        if not update_data:
            raise InvalidRequestError("No fields provided for update.")

        if "email" in update_data:
            update_data["email"] = update_data["email"].strip().lower()
        if "username" in update_data:
            self._ensure_username_free(role, update_data["username"], user_id)

        update_data["updatedAt"] = datetime.utcnow().isoformat()
        self._collection(role).document(user_id).update(update_data)

        if "status" in update_data:
            self._set_auth_disabled(user, update_data["status"] != ApprovalStatus.ACTIVE.value)

        self._invalidate()
        user.update(update_data)
        return user

    def _ensure_username_free(self, role: UserRole, username: str, user_id: str):
        docs = self._collection(role).where("username", "==", username).limit(1).stream()
        for doc in docs:
            if doc.id != user_id:
                raise ConflictError(f"Username '{username}' is already taken.")

    # --- Teachers ---

    def list_teachers(self, status: Optional[str] = ApprovalStatus.ACTIVE.value) -> List[Dict[str, Any]]:
        """
        List teachers, by default only active ones.

        Pass status=None for every teacher regardless of status.
        """
        active_only = status == ApprovalStatus.ACTIVE.value
        if active_only and self._use_cache and self._cache:
            cached = self._cache.get_active_teachers()
            if cached:
                return cached

        teachers = self._list(UserRole.TEACHER, status)

        if active_only and self._use_cache and self._cache and teachers:
            self._cache.set_active_teachers(teachers)
        return teachers

    def get_teacher(self, teacher_id: str) -> Dict[str, Any]:
        return self._require(UserRole.TEACHER, teacher_id)

    def get_teachers_by_ids(self, teacher_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        """Fetch several teachers at once, keyed by document id. Missing ids are skipped."""
        teachers = {}
        for teacher_id in dict.fromkeys(teacher_ids):
            teacher = self._get(UserRole.TEACHER, teacher_id)
            if teacher is not None:
                teachers[teacher_id] = teacher
        return teachers

    def update_teacher(self, teacher_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._update(UserRole.TEACHER, teacher_id, data)

    def delete_teacher(self, teacher_id: str, actor=None) -> Dict[str, Any]:
        """
        Delete a teacher and unassign them from every batch.

        The batch updates and the profile deletion commit together.
        """
        teacher = self._require(UserRole.TEACHER, teacher_id)

        batch = self.db.batch()
        unassigned = 0
        query = self.db.collection(self.BATCHES_COLLECTION).where(
            "teacherIds", "array_contains", teacher_id
        )
        for batch_doc in query.stream():
            batch.update(batch_doc.reference, {
                "teacherIds": firestore.ArrayRemove([teacher_id]),
                "updatedAt": datetime.utcnow().isoformat(),
            })
            unassigned += 1

        batch.delete(self._collection(UserRole.TEACHER).document(teacher_id))
        batch.commit()

        self._delete_auth_user(teacher.get("uid"))
        if self._use_cache and self._cache:
            self._cache.invalidate_batches()
        self._invalidate()

        self.activity.log_for(
            actor, "teacher_deleted",
            f"Deleted teacher {teacher.get('name')} ({teacher_id}), unassigned from {unassigned} batches"
        )
        return {"id": teacher_id, "unassignedBatches": unassigned}

    # --- Admins ---

    def list_admins(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        if status and status not in {s.value for s in ApprovalStatus}:
            raise InvalidRequestError("Invalid status filter value.")
        return self._list(UserRole.ADMIN, status)

    def get_admin(self, admin_id: str) -> Dict[str, Any]:
        return self._require(UserRole.ADMIN, admin_id)

    def update_admin(self, admin_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._update(UserRole.ADMIN, admin_id, data)

    def delete_admin(self, admin_id: str, actor=None) -> None:
        admin = self._require(UserRole.ADMIN, admin_id)
        self._collection(UserRole.ADMIN).document(admin_id).delete()
        self._delete_auth_user(admin.get("uid"))
        self._invalidate()
        self.activity.log_for(actor, "admin_deleted", f"Deleted admin {admin.get('name')} ({admin_id})")

    # --- Hosts ---

    def list_hosts(self) -> List[Dict[str, Any]]:
        return self._list(UserRole.HOST)

    def get_host(self, host_id: str) -> Dict[str, Any]:
        """Find a host by document id, falling back to the uid field."""
        host = self._get(UserRole.HOST, host_id)
        if host is not None:
            return host

        for doc in self._collection(UserRole.HOST).where("uid", "==", host_id).limit(1).stream():
            data = doc.to_dict()
            data["id"] = doc.id
            return data
        raise NotFoundError("Host not found.")

    def create_host(self, name: str, email: str, password: str, actor=None) -> Dict[str, Any]:
        """Create a Firebase Auth user and a host profile keyed by its uid."""
        email = email.strip().lower()
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidRequestError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

        try:
            auth.get_user_by_email(email)
            raise ConflictError(f"A user with email {email} already exists in the authentication system.")
        except auth.UserNotFoundError:
            pass

        user_record = auth.create_user(
            email=email,
            password=password,
            display_name=name,
            email_verified=True,
        )
        uid = user_record.uid

        host = {
            "uid": uid,
            "name": name,
            "email": email,
            "role": UserRole.HOST.value,
            "status": ApprovalStatus.ACTIVE.value,
            "createdAt": datetime.utcnow().isoformat(),
        }
        try:
            self._collection(UserRole.HOST).document(uid).set(host)
        except Exception:
            self._delete_auth_user(uid)
            raise

        self._invalidate()
        self.activity.log_for(actor, "host_created", f"Created host {name} ({email})")

        host["id"] = uid
        return host

    # --- Registration & approval ---

    def register_staff(
        self,
        name: str,
        email: str,
        role: UserRole,
        password: str,
        department: Optional[str] = None,
        actor=None
    ) -> Dict[str, Any]:
        """
        Register a teacher or admin awaiting host approval.

        The auth user is created disabled so the account can't sign in
        until it is approved.
        """
        role = UserRole(role)
        email = email.strip().lower()
        if role not in APPROVAL_ROLES:
            raise InvalidRequestError("Invalid user role specified.")
        if role == UserRole.TEACHER and not department:
            raise InvalidRequestError("Department is required for teacher role.")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidRequestError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

        existing = list(self._collection(role).where("email", "==", email).limit(1).stream())
        if existing:
            raise ConflictError(f"A {role.value} with email {email} already exists.")

        try:
            user_record = auth.create_user(
                email=email,
                password=password,
                display_name=name,
                disabled=True,
            )
        except auth.EmailAlreadyExistsError:
            raise ConflictError(f"A user with email {email} already exists in the authentication system.")

        profile = {
            "uid": user_record.uid,
            "name": name,
            "email": email,
            "role": role.value,
            "status": ApprovalStatus.PENDING.value,
            "createdAt": datetime.utcnow().isoformat(),
        }
        if role == UserRole.TEACHER:
            profile["department"] = department

        try:
            self._collection(role).document(user_record.uid).set(profile)
        except Exception:
            self._delete_auth_user(user_record.uid)
            raise

        self._invalidate()
        self.activity.log_for(actor, "staff_registered", f"Registered {role.value} {name} ({email})")

        profile["id"] = user_record.uid
        return profile

    def list_pending(self) -> Dict[str, List[Dict[str, Any]]]:
        """Teachers and admins waiting for approval."""
        return {
            "teachers": self._list(UserRole.TEACHER, ApprovalStatus.PENDING.value),
            "admins": self._list(UserRole.ADMIN, ApprovalStatus.PENDING.value),
        }

    def approve(self, role: UserRole, user_id: str, username: str, actor=None) -> Dict[str, Any]:
        """Activate a pending account and assign its username."""
        role = UserRole(role)
        if role not in APPROVAL_ROLES:
            raise InvalidRequestError("Only teachers and admins require approval.")
        username = (username or "").strip()
        if not username:
            raise InvalidRequestError("Username is required for approval.")

        user = self._require(role, user_id)
        self._ensure_username_free(role, username, user_id)

        update = {
            "status": ApprovalStatus.ACTIVE.value,
            "username": username,
            "approvedAt": datetime.utcnow().isoformat(),
        }
        self._collection(role).document(user_id).update(update)
        self._set_auth_disabled(user, False)
        self._invalidate()

        self.activity.log_for(actor, "user_approved", f"Approved {role.value} {user.get('name')} as {username}")
        user.update(update)
        return user

    def _set_status(self, role: UserRole, user_id: str, status: ApprovalStatus, actor=None) -> Dict[str, Any]:
        role = UserRole(role)
        if role not in APPROVAL_ROLES:
            raise InvalidRequestError("Only teacher and admin accounts can change status.")

        user = self._require(role, user_id)
        update = {"status": status.value, "updatedAt": datetime.utcnow().isoformat()}
        self._collection(role).document(user_id).update(update)
        self._set_auth_disabled(user, status != ApprovalStatus.ACTIVE)
        self._invalidate()

        self.activity.log_for(actor, f"user_{status.value}", f"Set {role.value} {user.get('name')} to {status.value}")
        user.update(update)
        return user

    def reject(self, role: UserRole, user_id: str, actor=None) -> Dict[str, Any]:
        return self._set_status(role, user_id, ApprovalStatus.REJECTED, actor)

    def suspend(self, role: UserRole, user_id: str, actor=None) -> Dict[str, Any]:
        return self._set_status(role, user_id, ApprovalStatus.SUSPENDED, actor)

    # --- Password reset ---

    def _reset_doc_id(self, email: str, role: UserRole) -> str:
        return hashlib.sha256(f"{UserRole(role).value}:{email.lower()}".encode()).hexdigest()

    def _hash_code(self, doc_id: str, code: str) -> str:
        return hashlib.sha256(f"{doc_id}:{code}".encode()).hexdigest()

    def find_by_email(self, role: UserRole, email: str) -> Optional[Dict[str, Any]]:
        for doc in self._collection(role).where("email", "==", email.strip().lower()).limit(1).stream():
            data = doc.to_dict()
            data["id"] = doc.id
            return data
        return None

    def request_password_reset(self, email: str, role: UserRole) -> str:
        """
        Issue a 6-digit reset code for an account.

        Only a hash of the code is stored. The plain code is returned for
        delivery to the account holder and must never reach the HTTP
        response.

        Raises:
            NotFoundError: No account with this email for the role
            AccountNotActiveError: Teacher or admin account is not active
        """
        role = UserRole(role)
        user = self.find_by_email(role, email)
        if user is None:
            raise NotFoundError(f"No user found with email {email} for the role {role.value}.")

        if role in APPROVAL_ROLES and user.get("status") != ApprovalStatus.ACTIVE.value:
            raise AccountNotActiveError("User account is not active.")

        code = f"{secrets.randbelow(10 ** 6):06d}"
        doc_id = self._reset_doc_id(email, role)
        now = datetime.utcnow()

        self.db.collection(self.PASSWORD_RESETS_COLLECTION).document(doc_id).set({
            "email": email.lower(),
            "role": role.value,
            "codeHash": self._hash_code(doc_id, code),
            "attempts": 0,
            "createdAt": now.isoformat(),
            "expiresAt": (now + timedelta(minutes=PASSWORD_RESET_CODE_TTL_MINUTES)).isoformat(),
        })

        if IS_PRODUCTION:
            print(f"[Auth] Password reset code issued for {role.value} {email}")
        else:
            print(f"[Auth] Password reset code for {role.value} {email}: {code}")
        return code

    def reset_password(self, email: str, role: UserRole, token: str, password: str) -> None:
        """
        Verify a reset code and set a new Firebase Auth password.

        The code is consumed on success and after too many wrong attempts.
        """
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidRequestError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")

        role = UserRole(role)
        doc_id = self._reset_doc_id(email, role)
        doc_ref = self.db.collection(self.PASSWORD_RESETS_COLLECTION).document(doc_id)
        doc = doc_ref.get()
        if not doc.exists:
            raise InvalidResetCodeError("Invalid or expired code. Please try again.")

        reset = doc.to_dict()
        if reset.get("expiresAt", "") < datetime.utcnow().isoformat():
            doc_ref.delete()
            raise InvalidResetCodeError("Invalid or expired code. Please try again.")

        if not hmac.compare_digest(reset.get("codeHash", ""), self._hash_code(doc_id, token)):
            attempts = reset.get("attempts", 0) + 1
            if attempts >= MAX_RESET_ATTEMPTS:
                doc_ref.delete()
            else:
                doc_ref.update({"attempts": attempts})
            raise InvalidResetCodeError("Invalid or expired code. Please try again.")

        try:
            user_record = auth.get_user_by_email(email)
        except auth.UserNotFoundError:
            raise NotFoundError(f"User with email {email} not found.")

        auth.update_user(user_record.uid, password=password)
        doc_ref.delete()
        print(f"[Auth] Password reset for {role.value} {email}")

    def purge_expired_reset_codes(self) -> int:
        """Delete reset codes past their expiry. Returns the number removed."""
        now = datetime.utcnow().isoformat()
        query = self.db.collection(self.PASSWORD_RESETS_COLLECTION).where("expiresAt", "<", now)

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
        return deleted


_user_service: Optional[UserService] = None


def get_user_service() -> UserService:
    """Get or create the user service singleton."""
    global _user_service
    if _user_service is None:
        initialize_firebase()
        _user_service = UserService()
    return _user_service
