"""
Signed-in doctor context.

A DoctorSession is created at sign-in and dropped at sign-out; components
that need the current doctor receive the SessionManager explicitly
instead of reading module state.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DoctorSession:
    user_id: str
    doctor_name: str = ""
    role: str = "doctor"
    signed_in_at: datetime = field(default_factory=datetime.now)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class SessionManager:
    """Owns the lifecycle of the active DoctorSession."""

    def __init__(self):
        self._session: Optional[DoctorSession] = None

    def sign_in(self, user_id: str, doctor_name: str = "", role: str = "doctor") -> DoctorSession:
        if not user_id:
            raise ValueError("user_id is required to sign in")
        self._session = DoctorSession(user_id=user_id, doctor_name=doctor_name, role=role)
        logger.info("Doctor %s signed in", user_id)
        return self._session

    def sign_out(self) -> None:
        if self._session is not None:
            logger.info("Doctor %s signed out", self._session.user_id)
        self._session = None

    def current_user(self) -> Optional[DoctorSession]:
        return self._session
