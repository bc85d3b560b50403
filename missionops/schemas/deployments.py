from datetime import date, datetime
from typing import Optional, List, Any
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class DeploymentStatus(str, Enum):
    DRAFT = "Draft"
    SCHEDULED = "Scheduled"
    ACTIVE = "Active"
    REVIEW = "Review"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    DELAYED = "Delayed"
    ARCHIVED = "Archived"


class DeploymentType(str, Enum):
    ROUTINE = "Routine Inspection"
    EMERGENCY = "Emergency Response"
    CONSTRUCTION = "Construction Progress"
    SURVEY = "Site Survey"
    MAINTENANCE = "Maintenance Verification"


def to_day(value: Any) -> Optional[str]:
    """Normalise a date, datetime or ISO string to a ``YYYY-MM-DD`` day string."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    if "T" in text:
        text = text.split("T")[0]
    elif " " in text:
        text = text.split(" ")[0]
    return date.fromisoformat(text).isoformat()


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "ignore"

    def to_api(self, **kwargs) -> dict:
        return self.model_dump(by_alias=True, mode="json", **kwargs)


class DailyLog(CamelModel):
    id: Optional[str] = None
    deployment_id: Optional[str] = None
    technician_id: str
    date: str
    daily_pay: float = Field(default=0.0, ge=0)
    bonus_pay: float = Field(default=0.0, ge=0)
    notes: Optional[str] = None

    @field_validator("id", "deployment_id", "technician_id", mode="before")
    @classmethod
    def ids_to_str(cls, v):
        return None if v is None else str(v)

    @field_validator("date", mode="before")
    @classmethod
    def truncate_day(cls, v):
        day = to_day(v)
        if day is None:
            raise ValueError("date is required")
        return day

    @field_validator("daily_pay", "bonus_pay", mode="before")
    @classmethod
    def none_to_zero(cls, v):
        return 0.0 if v in (None, "") else v

    @property
    def total(self) -> float:
        return (self.daily_pay or 0) + (self.bonus_pay or 0)


class MonitoringMember(CamelModel):
    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    mission_role: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def id_to_str(cls, v):
        return str(v)


class DeploymentFile(CamelModel):
    id: str
    name: Optional[str] = None
    url: Optional[str] = None
    type: Optional[str] = None
    size: Optional[int] = None
    uploaded_at: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def id_to_str(cls, v):
        return str(v)


class Deployment(CamelModel):
    id: str
    title: str
    type: Optional[str] = DeploymentType.ROUTINE.value
    status: DeploymentStatus = DeploymentStatus.DRAFT
    date: str
    days_on_site: Optional[int] = Field(default=1, ge=1)
    site_id: Optional[str] = None
    site_name: Optional[str] = None
    client_id: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    technician_ids: List[str] = Field(default_factory=list)
    monitoring_team: List[MonitoringMember] = Field(default_factory=list)
    daily_logs: List[DailyLog] = Field(default_factory=list)
    files: List[DeploymentFile] = Field(default_factory=list)

    # Pricing snapshot written by "save pricing"
    base_cost: Optional[float] = None
    markup_percentage: Optional[float] = None
    client_price: Optional[float] = None
    travel_costs: Optional[float] = None
    equipment_costs: Optional[float] = None

    # Denormalised counters maintained elsewhere
    file_count: Optional[int] = None
    personnel_count: Optional[int] = None

    @field_validator("id", "site_id", "client_id", mode="before")
    @classmethod
    def ids_to_str(cls, v):
        return None if v is None else str(v)

    @field_validator("date", mode="before")
    @classmethod
    def truncate_day(cls, v):
        day = to_day(v)
        if day is None:
            raise ValueError("date is required")
        return day

    @field_validator("technician_ids", mode="before")
    @classmethod
    def unique_technicians(cls, v):
        if v is None:
            return []
        seen = []
        for tech_id in v:
            tech_id = str(tech_id)
            if tech_id not in seen:
                seen.append(tech_id)
        return seen

    @field_validator("monitoring_team", "daily_logs", "files", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return [] if v is None else v

    @model_validator(mode="after")
    def logs_belong_to_deployment(self):
        for log in self.daily_logs:
            if log.deployment_id is None:
                log.deployment_id = self.id
            elif log.deployment_id != self.id:
                raise ValueError(
                    f"daily log {log.id} belongs to deployment {log.deployment_id}, not {self.id}"
                )
        return self


class DeploymentCreate(CamelModel):
    title: str
    site_name: str
    date: str
    type: str = DeploymentType.ROUTINE.value
    status: DeploymentStatus = DeploymentStatus.SCHEDULED
    days_on_site: Optional[int] = Field(default=1, ge=1)
    site_id: Optional[str] = None
    client_id: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("title", "site_name", mode="before")
    @classmethod
    def strip_required(cls, v):
        v = "" if v is None else str(v).strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("date", mode="before")
    @classmethod
    def truncate_day(cls, v):
        day = to_day(v)
        if day is None:
            raise ValueError("date is required")
        return day
