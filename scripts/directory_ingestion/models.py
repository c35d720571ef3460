"""Canonical user record shape submitted to Log Analytics."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Optional

from scripts.directory_ingestion.errors import MappingError

# Graph properties requested for every user; signInActivity needs AuditLog.Read.All
GRAPH_SELECT_FIELDS = [
    "id", "userPrincipalName", "displayName", "city", "country",
    "department", "jobTitle", "mail", "officeLocation", "assignedLicenses",
    "assignedPlans", "createdDateTime", "signInActivity",
]


def _entries(raw: dict, key: str, record_id: Optional[str]) -> tuple[dict, ...]:
    value = raw.get(key)
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        raise MappingError(f"{key} is not a list of objects", record_id=record_id)
    return tuple(copy.deepcopy(v) for v in value)


@dataclass(frozen=True)
class UserRecord:
    userPrincipalName: str
    displayName: Optional[str]
    city: Optional[str]
    country: Optional[str]
    department: Optional[str]
    jobTitle: Optional[str]
    mail: Optional[str]
    officeLocation: Optional[str]
    assignedLicenses: tuple[dict, ...]
    assignedPlans: tuple[dict, ...]
    createDateTime: Optional[str]
    lastAccess: Optional[str]
    userId: str

    @classmethod
    def from_graph(cls, raw: Any) -> "UserRecord":
        """Map one Graph user object. Raises MappingError on malformed input."""
        if not isinstance(raw, dict):
            raise MappingError(f"Expected user object, got {type(raw).__name__}")

        user_id = raw.get("id")
        upn = raw.get("userPrincipalName")
        if not user_id or not isinstance(user_id, str):
            raise MappingError("User is missing id", record_id=upn)
        if not upn or not isinstance(upn, str):
            raise MappingError("User is missing userPrincipalName", record_id=user_id)

        # Absent or null when the account has never signed in
        sign_in = raw.get("signInActivity")
        if sign_in is None:
            last_access = None
        elif isinstance(sign_in, dict):
            last_access = sign_in.get("lastSignInDateTime")
        else:
            raise MappingError("signInActivity is not an object", record_id=user_id)

        return cls(
            userPrincipalName=upn,
            displayName=raw.get("displayName"),
            city=raw.get("city"),
            country=raw.get("country"),
            department=raw.get("department"),
            jobTitle=raw.get("jobTitle"),
            mail=raw.get("mail"),
            officeLocation=raw.get("officeLocation"),
            assignedLicenses=_entries(raw, "assignedLicenses", user_id),
            assignedPlans=_entries(raw, "assignedPlans", user_id),
            createDateTime=raw.get("createdDateTime"),
            lastAccess=last_access,
            userId=user_id,
        )

    def to_log_record(self) -> dict[str, Any]:
        return {
            "userPrincipalName": self.userPrincipalName,
            "displayName": self.displayName,
            "city": self.city,
            "country": self.country,
            "department": self.department,
            "jobTitle": self.jobTitle,
            "mail": self.mail,
            "officeLocation": self.officeLocation,
            "assignedLicenses": [copy.deepcopy(e) for e in self.assignedLicenses],
            "assignedPlans": [copy.deepcopy(e) for e in self.assignedPlans],
            "createDateTime": self.createDateTime,
            "lastAccess": self.lastAccess,
            "userId": self.userId,
        }
