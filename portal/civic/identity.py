"""
Identity: the user directory, staff password login and citizen OTP login.

Staff passwords are bcrypt hashes (passlib). Citizens have no password; they
prove ownership of a mobile number with a one-time code and are created the
first time a number verifies.
"""

import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from passlib.context import CryptContext

from .errors import InvalidCredentials, InvalidOtp, NotFound, OtpExpired, ValidationError
from .lifecycle import as_utc, now_utc
from .models import STAFF_ROLES, UserRole

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    if len(password.encode("utf-8")) > 72:
        raise ValidationError("Password cannot exceed 72 bytes")
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


def new_user_id(role: UserRole) -> str:
    prefix = "citizen" if role == UserRole.CITIZEN else role.value
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def public_user(user: dict) -> dict:
    """Strip password material and rename ``_id``."""
    out = {k: v for k, v in user.items() if k not in ("_id", "hashed_password", "password")}
    out["id"] = str(user["_id"])
    out["created_at"] = as_utc(user.get("created_at"))
    return out


class UserDirectory:
    def __init__(self, db):
        self.users = db.users

    def find(self, user_id: str) -> Optional[dict]:
        return self.users.find_one({"_id": user_id})

    def get(self, user_id: str) -> dict:
        user = self.find(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def get_by_mobile(self, mobile: str) -> dict:
        user = self.users.find_one({"mobile": mobile})
        if user is None:
            raise NotFound("User not found")
        return user

    def list_staff(self) -> List[dict]:
        return list(self.users.find({"role": {"$ne": UserRole.CITIZEN.value}}))

    def get_or_create_citizen(self, mobile: str, name: Optional[str] = None) -> dict:
        existing = self.users.find_one({"mobile": mobile})
        if existing is not None:
            return existing
        user = {
            "_id": new_user_id(UserRole.CITIZEN),
            "name": name or f"Citizen User {mobile[-4:]}",
            "mobile": mobile,
            "role": UserRole.CITIZEN.value,
            "created_at": now_utc(),
        }
        self.users.insert_one(user)
        logger.info("Created citizen %s for mobile ending %s", user["_id"], mobile[-4:])
        return user

    def create_staff(self, username: str, password: str, name: str, role: UserRole,
                     department: Optional[str] = None, mobile: Optional[str] = None,
                     user_id: Optional[str] = None) -> dict:
        role = UserRole(role)
        if role not in STAFF_ROLES:
            raise ValidationError("Staff accounts need a staff role")
        if self.users.find_one({"username": username}):
            raise ValidationError("Username already exists")
        user = {
            "_id": user_id or new_user_id(role),
            "name": name,
            "mobile": mobile,
            "role": role.value,
            "department": department,
            "username": username,
            "hashed_password": hash_password(password),
            "created_at": now_utc(),
        }
        self.users.insert_one(user)
        return user

    def authenticate_staff(self, username: str, password: str) -> dict:
        user = self.users.find_one({"username": username, "role": {"$ne": UserRole.CITIZEN.value}})
        if user is None or not verify_password(password, user.get("hashed_password")):
            logger.warning("Failed staff login for %s", username)
            raise InvalidCredentials()
        return user

    def ensure_indexes(self) -> None:
        self.users.create_index("mobile")
        self.users.create_index("username")
        self.users.create_index("role")


class OtpService:
    """Single-use login codes keyed by mobile number."""

    def __init__(self, db, directory: UserDirectory, ttl_minutes: int = 5,
                 demo_mode: bool = True, demo_code: str = "123456"):
        self.otps = db.otps
        self.directory = directory
        self.ttl = timedelta(minutes=ttl_minutes)
        self.demo_mode = demo_mode
        self.demo_code = demo_code

    def _generate(self) -> str:
        if self.demo_mode:
            return self.demo_code
        return f"{secrets.randbelow(10 ** 6):06d}"

    def send(self, mobile: str, now: Optional[datetime] = None) -> datetime:
        """Issue a code for ``mobile`` (replacing any pending one); returns its expiry."""
        otp = self._generate()
        expires_at = (now or now_utc()) + self.ttl
        self.otps.replace_one({"_id": mobile},
                              {"_id": mobile, "otp": otp, "expires_at": expires_at},
                              upsert=True)
        # No SMS gateway is wired in; demo codes are only ever logged
        if self.demo_mode:
            logger.info("DEMO OTP for mobile ending %s: %s", mobile[-4:], otp)
        else:
            logger.info("OTP issued for mobile ending %s", mobile[-4:])
        return expires_at

    def verify(self, mobile: str, otp: str, now: Optional[datetime] = None) -> dict:
        record = self.otps.find_one({"_id": mobile})
        if record is None:
            raise OtpExpired()
        if (now or now_utc()) > as_utc(record["expires_at"]):
            self.otps.delete_one({"_id": mobile})
            raise OtpExpired("OTP expired")
        if not secrets.compare_digest(str(record["otp"]), str(otp)):
            logger.warning("Invalid OTP for mobile ending %s", mobile[-4:])
            raise InvalidOtp()
        self.otps.delete_one({"_id": mobile})
        return self.directory.get_or_create_citizen(mobile)
