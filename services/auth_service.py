"""
Authentication service: registration and login.

Brute-force bookkeeping happens here because only this layer knows whether
an attempt failed: an unknown email, a wrong password and a duplicate
registration each count as a failure; a success clears the counter.
"""
import logging
from typing import Any, Dict, Optional

from starlette.concurrency import run_in_threadpool

from models.user import UserLogin, UserRegister
from repositories.user_repository import UserRepository
from security.credential_gate import CredentialGate
from services.attempt_tracker import AttemptTracker
from utils.exceptions import AuthError, ClientInputError

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"

# Verified against when the email is unknown so both paths cost one bcrypt check.
_DUMMY_PASSWORD = "Dummy-Password-1!"


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in user.items() if key != "password_hash"}


class AuthService:
    def __init__(self, users: UserRepository, gate: CredentialGate, brute_force: AttemptTracker):
        self.users = users
        self.gate = gate
        self.brute_force = brute_force
        self._dummy_hash: Optional[str] = None

    async def _record_failure(self, attempt_key: Optional[str]) -> None:
        if attempt_key:
            record = await self.brute_force.record_failure_async(attempt_key)
            logger.warning(f"[AUTH] Failed attempt {record.count}/{self.brute_force.max_attempts} for {attempt_key}")

    async def _record_success(self, attempt_key: Optional[str]) -> None:
        if attempt_key:
            await self.brute_force.record_success_async(attempt_key)

    def _issue(self, user: Dict[str, Any]) -> Dict[str, Any]:
        token = self.gate.issue_token(user["id"], user["email"], user["role"])
        return {"token": token, "user": public_user(user)}

    async def register(self, data: UserRegister, attempt_key: Optional[str] = None) -> Dict[str, Any]:
        if self.users.get_by_email(data.email):
            await self._record_failure(attempt_key)
            raise ClientInputError("A user with this email already exists")

        password_hash = await run_in_threadpool(self.gate.passwords.hash_password, data.password)
        user = self.users.create_user({
            "email": data.email,
            "password_hash": password_hash,
            "first_name": data.first_name,
            "last_name": data.last_name,
            "patronymic": data.patronymic,
            "role": "USER",
        })
        await self._record_success(attempt_key)
        logger.info(f"✅ [AUTH] Registered user {user['id']}")
        return self._issue(user)

    async def login(self, data: UserLogin, attempt_key: Optional[str] = None) -> Dict[str, Any]:
        user = self.users.get_by_email(data.email)

        if user is None:
            if self._dummy_hash is None:
                self._dummy_hash = await run_in_threadpool(self.gate.passwords.hash_password, _DUMMY_PASSWORD)
            await run_in_threadpool(self.gate.passwords.verify_password, data.password, self._dummy_hash)
            await self._record_failure(attempt_key)
            raise AuthError(INVALID_CREDENTIALS)

        valid = await run_in_threadpool(self.gate.passwords.verify_password, data.password, user["password_hash"])
        if not valid:
            await self._record_failure(attempt_key)
            raise AuthError(INVALID_CREDENTIALS)

        await self._record_success(attempt_key)
        logger.info(f"✅ [AUTH] Login for user {user['id']}")
        return self._issue(user)

    def current_user(self, user_id: str) -> Dict[str, Any]:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise AuthError("User no longer exists")
        return public_user(user)
