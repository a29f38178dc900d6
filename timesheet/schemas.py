"""
Database schemas and request bodies for the time-tracking API.

Each collection model corresponds to a MongoDB collection named by the
lowercase class name (``user``, ``timeentry``, ``schedule``, ``branch``,
``announcement``). Documents are stored with snake_case keys; the HTTP API
speaks camelCase, so request models accept either spelling.
"""
from datetime import date, datetime
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from timesheet.shift_time import is_valid_hhmm

Position = Literal["worker", "rider", "monthly"]
OvertimeReason = Literal["Busy", "Last Order", "Company Request"]
ShiftType = Literal["day", "night"]
ScheduleRole = Literal["worker", "rider", "manager", "cashier", "cook"]
ScheduleStatus = Literal["scheduled", "confirmed", "completed", "no-show", "cancelled"]
AnnouncementType = Literal["info", "warning", "success"]
Skill = Literal["cooking", "cashier", "cleaning", "management", "delivery"]
Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_hhmm(value: str) -> str:
    if not is_valid_hhmm(value):
        raise ValueError("Time must be in HH:MM format")
    return value


HHMM = Annotated[str, AfterValidator(_check_hhmm)]


# -----------------
# Users
# -----------------

class EmergencyContact(ApiModel):
    name: str = ""
    phone: str = ""
    relationship: str = ""


class User(ApiModel):
    username: str
    password: str = Field(..., description="bcrypt hash")
    employee_id: str
    position: Position
    is_admin: bool = False
    is_active: bool = True
    name: str = ""
    email: Optional[EmailStr] = None
    phone: str = ""
    bio: str = Field("", max_length=500)
    department: str = ""
    photo_url: str = ""
    hire_date: Optional[datetime] = None
    skills: List[str] = []
    emergency_contact: EmergencyContact = EmergencyContact()
    monthly_target_hours: int = Field(160, ge=80, le=240)
    monthly_schedule: Literal["full-time", "part-time"] = "full-time"
    last_login: Optional[datetime] = None


class RegisterRequest(ApiModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    employee_id: str = Field(..., min_length=1)
    position: Position = "worker"
    name: str = ""


class CreateUserRequest(RegisterRequest):
    is_admin: bool = False


class LoginRequest(ApiModel):
    username: str
    password: str


class AuthResponse(ApiModel):
    token: str
    position: str
    is_admin: bool
    username: str
    employee_id: str


class ProfileUpdate(ApiModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=500)
    department: Optional[str] = None
    photo_url: Optional[str] = None
    hire_date: Optional[datetime] = None
    skills: Optional[List[str]] = None
    emergency_contact: Optional[EmergencyContact] = None
    monthly_target_hours: Optional[int] = Field(None, ge=80, le=240)
    monthly_schedule: Optional[Literal["full-time", "part-time"]] = None


# -----------------
# Time entries
# -----------------

class TimeEntry(ApiModel):
    user_id: str
    date: datetime
    start_time: datetime
    end_time: datetime
    hours: float
    position: str = "worker"
    employee_id: str = ""
    break_minutes: float = 0
    overtime_reason: Optional[OvertimeReason] = None
    responsible_person: str = ""
    description: str = ""


class TimeEntryRequest(ApiModel):
    start_time: datetime
    end_time: datetime
    date: date
    break_minutes: float = Field(0, ge=0)
    overtime_reason: Optional[OvertimeReason] = None
    responsible_person: str = ""
    description: str = ""

    @model_validator(mode="after")
    def responsible_person_for_company_request(self):
        if self.overtime_reason == "Company Request":
            if not self.responsible_person.strip():
                raise ValueError("Responsible person is required for Company Request overtime")
        else:
            self.responsible_person = ""
        return self


# -----------------
# Branches
# -----------------

class Coordinates(ApiModel):
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class Location(ApiModel):
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    district: str = ""
    coordinates: Coordinates = Coordinates()

    @field_validator("address", "city", "district")
    @classmethod
    def strip(cls, value: str) -> str:
        return value.strip()


class Contact(ApiModel):
    phone: str = ""
    email: Optional[EmailStr] = None
    manager: str = ""


class DayHours(ApiModel):
    is_open: bool = True
    open: HHMM = "08:00"
    close: HHMM = "22:00"


class OperatingHours(ApiModel):
    monday: DayHours = DayHours()
    tuesday: DayHours = DayHours()
    wednesday: DayHours = DayHours()
    thursday: DayHours = DayHours()
    friday: DayHours = DayHours()
    saturday: DayHours = DayHours()
    sunday: DayHours = DayHours()


class Capacity(ApiModel):
    max_workers: int = Field(5, ge=1, le=20)
    max_riders: int = Field(2, ge=0, le=10)


class Requirements(ApiModel):
    minimum_staff: int = Field(2, ge=1)
    skills_required: List[Skill] = []


class Branch(ApiModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=2, max_length=10)
    location: Location
    contact: Contact = Contact()
    operating_hours: OperatingHours = OperatingHours()
    capacity: Capacity = Capacity()
    requirements: Requirements = Requirements()
    is_active: bool = True
    notes: str = Field("", max_length=1000)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        return value.strip()

    @field_validator("code")
    @classmethod
    def upper_code(cls, value: str) -> str:
        return value.strip().upper()


class BranchUpdate(ApiModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    code: Optional[str] = Field(None, min_length=2, max_length=10)
    location: Optional[dict] = None
    contact: Optional[dict] = None
    operating_hours: Optional[dict] = None
    capacity: Optional[dict] = None
    requirements: Optional[dict] = None
    notes: Optional[str] = Field(None, max_length=1000)
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value else value

    @field_validator("code")
    @classmethod
    def upper_code(cls, value: Optional[str]) -> Optional[str]:
        return value.strip().upper() if value else value


# -----------------
# Schedules
# -----------------

class Schedule(ApiModel):
    branch_id: str
    worker_id: str
    date: datetime
    start_time: HHMM
    end_time: HHMM
    shift_type: ShiftType
    role: ScheduleRole
    status: ScheduleStatus = "scheduled"
    notes: str = Field("", max_length=500)
    created_by: str
    confirmed_by: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    original_schedule_id: Optional[str] = None


class ScheduleCreateRequest(ApiModel):
    branch_id: str
    worker_id: str
    start_time: str
    end_time: str
    shift_type: ShiftType
    role: ScheduleRole
    notes: str = Field("", max_length=500)
    duration: Optional[str] = None
    working_days: List[Weekday] = Field(..., min_length=1)

    @field_validator("working_days", mode="before")
    @classmethod
    def lower_days(cls, value):
        if isinstance(value, list):
            return [day.lower() if isinstance(day, str) else day for day in value]
        return value


class ScheduleUpdateRequest(ApiModel):
    branch_id: Optional[str] = None
    worker_id: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    shift_type: Optional[ShiftType] = None
    role: Optional[ScheduleRole] = None
    status: Optional[ScheduleStatus] = None
    notes: Optional[str] = Field(None, max_length=500)


# -----------------
# Announcements & notifications
# -----------------

class Announcement(ApiModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    type: AnnouncementType = "info"
    is_active: bool = True


class AnnouncementUpdate(ApiModel):
    title: Optional[str] = None
    content: Optional[str] = None
    type: Optional[AnnouncementType] = None
    is_active: Optional[bool] = None


class TelegramMessage(ApiModel):
    message: str = ""


class SystemNotification(ApiModel):
    message: str = ""
    type: Literal["info", "warning", "error"] = "info"
