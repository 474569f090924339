"""
Dashboard record shapes produced by the spreadsheet import.

Each model corresponds to one document collection. Status-like fields are open
strings: the enums below list the suggested values and the defaults, but any
other value found in a sheet is kept as-is.
"""
from enum import Enum
from typing import List, Type

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class EntityKind(str, Enum):
    """Logical entity a sheet tab holds; the value doubles as collection name"""
    RECRUITERS = "recruiters"
    CANDIDATES = "candidates"
    CLIENTS = "clients"
    PERFORMANCE = "performance"


class RecruiterStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"


class CandidateStatus(str, Enum):
    HIRED = "hired"
    INTERVIEW = "interview"
    PENDING = "pending"
    REJECTED = "rejected"


class ClientStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    INACTIVE = "inactive"


class DashboardRecord(BaseModel):
    """Base for imported records: snake_case in Python, camelCase on the wire"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class Recruiter(DashboardRecord):
    name: str = ""
    email: str = ""
    phone: str = ""
    department: str = ""
    territory: str = ""
    hired_count: int = Field(default=0, ge=0)
    join_date: str = ""
    status: str = RecruiterStatus.ACTIVE.value
    trend: str = Trend.UP.value
    location: str = ""
    reporting_manager: str = ""
    remarks: str = ""
    backend_callings_remarks: str = ""
    recruiter_backend_callings: str = ""


class Candidate(DashboardRecord):
    name: str = ""
    email: str = ""
    phone: str = ""
    position: str = ""
    experience_text: str = ""
    skills: List[str] = Field(default_factory=list)
    status: str = CandidateStatus.PENDING.value
    salary: int = Field(default=0, ge=0)
    recruiter: str = ""
    client: str = ""
    applied_date: str = ""
    location: str = ""
    reporting_manager: str = ""
    doj: str = ""
    salary_details: str = ""
    remarks: str = ""
    backend_callings_remarks: str = ""


class Client(DashboardRecord):
    name: str = ""
    company: str = ""
    email: str = ""
    phone: str = ""
    industry: str = ""
    total_hired: int = Field(default=0, ge=0)
    avg_days_to_fill: int = Field(default=0, ge=0)
    status: str = ClientStatus.ACTIVE.value
    location: str = ""
    contact_number: str = ""
    last_activity: str = ""
    remarks: str = ""
    backend_callings_remarks: str = ""


class PerformanceMetric(DashboardRecord):
    month: str = ""
    recruiter_count: int = Field(default=0, ge=0)
    hired_count: int = Field(default=0, ge=0)
    target_count: int = Field(default=0, ge=0)


RECORD_MODELS: dict = {
    EntityKind.RECRUITERS: Recruiter,
    EntityKind.CANDIDATES: Candidate,
    EntityKind.CLIENTS: Client,
    EntityKind.PERFORMANCE: PerformanceMetric,
}


def model_for(kind: EntityKind) -> Type[DashboardRecord]:
    return RECORD_MODELS[kind]
