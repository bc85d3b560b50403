from typing import Optional
from enum import Enum

from pydantic import field_validator

from .deployments import CamelModel


class PersonnelRole(str, Enum):
    PILOT = "Pilot"
    TECHNICIAN = "Technician"
    BOTH = "Both"


class PersonnelStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    ON_LEAVE = "On Leave"


# Statuses an admin may still put on a mission.
ASSIGNABLE_STATUSES = frozenset({PersonnelStatus.ACTIVE.value, PersonnelStatus.INACTIVE.value, PersonnelStatus.ON_LEAVE.value})


class Personnel(CamelModel):
    id: str
    full_name: str
    role: Optional[str] = PersonnelRole.PILOT.value
    email: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[str] = PersonnelStatus.ACTIVE.value
    daily_pay_rate: Optional[float] = None

    # Only read by invoice rendering
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    routing_number: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def id_to_str(cls, v):
        return str(v)

    @property
    def is_assignable(self) -> bool:
        return self.status in ASSIGNABLE_STATUSES
