# Enums and Pydantic models shared by the engine and the HTTP layer

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Category(str, Enum):
    ROADS = "roads"
    WATER = "water"
    ELECTRICITY = "electricity"
    GARBAGE = "garbage"
    STREETLIGHT = "streetlight"
    OTHER = "other"

class ComplaintStatus(str, Enum):
    OPEN = "open"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"
    ESCALATED = "escalated"
    REJECTED = "rejected"

class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

class UserRole(str, Enum):
    CITIZEN = "citizen"
    SUPER_ADMIN = "super_admin"
    DEPARTMENT_HEAD = "department_head"
    FIELD_STAFF = "field_staff"

class CommentType(str, Enum):
    COMMENT = "comment"
    UPDATE = "update"

class TrendBucket(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

class TrendMode(str, Enum):
    COMPUTED = "computed"
    FIXTURE = "fixture"

STAFF_ROLES = (UserRole.SUPER_ADMIN, UserRole.DEPARTMENT_HEAD, UserRole.FIELD_STAFF)

DEPARTMENTS = ["Public Works", "Water Supply", "Electrical", "Sanitation", "Administration"]

# Department that handles a category when no department was assigned explicitly
CATEGORY_DEPARTMENTS = {
    Category.ROADS.value: "Public Works",
    Category.WATER.value: "Water Supply",
    Category.ELECTRICITY.value: "Electrical",
    Category.GARBAGE.value: "Sanitation",
    Category.STREETLIGHT.value: "Electrical",
    Category.OTHER.value: "Administration",
}

# ---------------------------------------------------------------------------
# Complaint models
# ---------------------------------------------------------------------------
class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

class Location(BaseModel):
    address: str = Field(..., max_length=500)
    coordinates: Optional[Coordinates] = None

    @model_validator(mode="before")
    @classmethod
    def accept_flat_coordinates(cls, values):
        # {"address": ..., "lat": .., "lng": ..} is accepted as well
        if isinstance(values, dict) and values.get("coordinates") is None:
            if values.get("lat") is not None and values.get("lng") is not None:
                values = dict(values)
                values["coordinates"] = {"lat": values.pop("lat"), "lng": values.pop("lng")}
        return values

class ComplaintCreate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    category: Category
    priority: Optional[Priority] = None
    location: Location
    images: List[str] = Field(default_factory=list, max_length=20)
    citizen_id: Optional[str] = Field(None, max_length=100)
    citizen_name: Optional[str] = Field(None, max_length=200)
    assigned_department: Optional[str] = Field(None, max_length=100)

class ComplaintUpdate(BaseModel):
    """Partial update. Only the fields present in the request are merged."""
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    category: Optional[Category] = None
    status: Optional[ComplaintStatus] = None
    priority: Optional[Priority] = None
    location: Optional[Location] = None
    images: Optional[List[str]] = None
    assigned_to: Optional[str] = None
    assigned_department: Optional[str] = None
    note: Optional[str] = Field(None, max_length=2000)
    revision: Optional[int] = Field(None, ge=1)

class ComplaintFilter(BaseModel):
    citizen_id: Optional[str] = None
    assigned_to: Optional[str] = None
    status: Optional[ComplaintStatus] = None
    category: Optional[Category] = None
    priority: Optional[Priority] = None
    department: Optional[str] = None

class Assignment(BaseModel):
    assigned_to: Optional[str] = Field(None, max_length=100)
    assigned_department: Optional[str] = Field(None, max_length=100)
    note: Optional[str] = Field(None, max_length=2000)

class Reassignment(BaseModel):
    department: str = Field(..., min_length=1, max_length=100)
    staff: Optional[str] = Field(None, max_length=100)
    note: Optional[str] = Field(None, max_length=2000)

class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    type: CommentType = CommentType.COMMENT

class CitizenAction(BaseModel):
    note: Optional[str] = Field(None, max_length=2000)

class TimelineEntry(BaseModel):
    status: ComplaintStatus
    timestamp: datetime
    note: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None

class Comment(BaseModel):
    id: str
    content: str
    type: CommentType = CommentType.COMMENT
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    user_role: Optional[UserRole] = None
    timestamp: datetime

class ComplaintResponse(BaseModel):
    id: str
    title: str
    description: str
    category: Category
    status: ComplaintStatus
    priority: Priority
    location: Location
    images: List[str] = Field(default_factory=list)
    citizen_id: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_department: Optional[str] = None
    submitted_at: datetime
    updated_at: datetime
    timeline: List[TimelineEntry]
    comments: List[Comment] = Field(default_factory=list)
    revision: int = 1

# ---------------------------------------------------------------------------
# User & auth models
# ---------------------------------------------------------------------------
class CitizenCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    mobile: str = Field(..., pattern=r"^\+?\d{10,15}$")

class StaffLogin(BaseModel):
    username: str = Field(..., max_length=50)
    password: str = Field(..., max_length=72)

class OtpRequest(BaseModel):
    mobile: str = Field(..., pattern=r"^\+?\d{10,15}$")

class OtpVerify(BaseModel):
    mobile: str = Field(..., pattern=r"^\+?\d{10,15}$")
    otp: str = Field(..., min_length=4, max_length=8)

class UserResponse(BaseModel):
    id: str
    name: str
    mobile: Optional[str] = None
    role: UserRole
    department: Optional[str] = None
    username: Optional[str] = None
    created_at: Optional[datetime] = None

# ---------------------------------------------------------------------------
# Response envelopes
# ---------------------------------------------------------------------------
class ComplaintEnvelope(BaseModel):
    success: bool = True
    complaint: ComplaintResponse

class ComplaintListEnvelope(BaseModel):
    success: bool = True
    complaints: List[ComplaintResponse]

class CommentListEnvelope(BaseModel):
    success: bool = True
    comments: List[Comment]

class DeleteEnvelope(BaseModel):
    success: bool = True
    message: str
    complaint: ComplaintResponse

class UserEnvelope(BaseModel):
    success: bool = True
    user: UserResponse

class UserListEnvelope(BaseModel):
    success: bool = True
    users: List[UserResponse]

class LoginEnvelope(BaseModel):
    success: bool = True
    user: UserResponse
    access_token: str
    token_type: str = "bearer"

class OtpSentEnvelope(BaseModel):
    success: bool = True
    message: str
    expires_at: datetime

class StatsResponse(BaseModel):
    success: bool = True
    total: int
    by_status: Dict[str, int]
    by_priority: Dict[str, int]
    resolution_rate: float
    avg_resolution_hours: Optional[float] = None

class CategoryStatsEnvelope(BaseModel):
    success: bool = True
    categories: List[Dict[str, Any]]

class DepartmentStatsEnvelope(BaseModel):
    success: bool = True
    departments: List[Dict[str, Any]]

class TrendEnvelope(BaseModel):
    success: bool = True
    mode: TrendMode
    bucket: TrendBucket
    trends: List[Dict[str, Any]]
