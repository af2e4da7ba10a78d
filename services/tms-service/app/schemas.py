import re
import datetime as dt
from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr, Field, field_validator, model_validator
from typing import Annotated, List, Optional, Generic, TypeVar
from datetime import date, datetime, time

from .models import (
    Status, Priority, UserRole, MeetingStatus, EventType,
    ReportScope, ReportStatus, ContactType
)

T = TypeVar("T")

PHONE_REGEX = re.compile(r"^\+?\d{10,15}$")
HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
NAME_REGEX = re.compile(r"^[A-Za-z]+$")

# --- UTILIDADES ---

class MetaData(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int

class PaginatedResponse(BaseModel, Generic[T]):
    data: List[T]
    meta: MetaData

class BulkDeleteRequest(BaseModel):
    ids: List[int] = Field(default_factory=list, description="IDs a eliminar")

class BulkDeleteResponse(BaseModel):
    message: str
    deleted: int

class MessageResponse(BaseModel):
    message: str

class EmailMessage(BaseModel):
    """Correo listo para entregar (inline o vía RabbitMQ)."""
    to: List[str]
    subject: str
    body: str

def _lower_enum_value(v):
    return v.lower() if isinstance(v, str) else v

# Enums aceptan mayúsculas ("In Progress", "HIGH")
StatusField = Annotated[Status, BeforeValidator(_lower_enum_value)]
PriorityField = Annotated[Priority, BeforeValidator(_lower_enum_value)]
ScopeField = Annotated[ReportScope, BeforeValidator(_lower_enum_value)]
ReportStatusField = Annotated[ReportStatus, BeforeValidator(_lower_enum_value)]
ContactTypeField = Annotated[ContactType, BeforeValidator(_lower_enum_value)]

def _validate_phone(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not PHONE_REGEX.match(v):
        raise ValueError("must be a valid phone number (10-15 digits, optional leading +)")
    return v

# --- DEPARTAMENTOS ---

class DepartmentBase(BaseModel):
    name: str = Field(..., min_length=1, description="Nombre único (se guarda en minúsculas)")
    description: Optional[str] = None
    color: str = Field("#3B82F6", pattern=HEX_COLOR_PATTERN)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        return v.strip().lower()

class DepartmentCreate(DepartmentBase):
    pass

class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v else v

class DepartmentSummary(BaseModel):
    id: int
    name: str
    color: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)

class DepartmentResponse(DepartmentBase):
    id: int
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

# --- USUARIOS ---

def _normalize_person_name(v: str) -> str:
    v = v.strip()
    if not NAME_REGEX.match(v):
        raise ValueError("must contain only alphabetic characters")
    return v.capitalize()

class UserBase(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_names(cls, v: str) -> str:
        return _normalize_person_name(v)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()

class UserRegister(UserBase):
    password: str = Field(..., min_length=8)
    department_id: Optional[int] = None

class UserCreate(UserBase):
    """Alta por un administrador: el departamento es obligatorio."""
    password: str = Field(..., min_length=8)
    role: UserRole = UserRole.USER
    department_id: int

class UserUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=8)
    role: Optional[UserRole] = None
    department_id: Optional[int] = None
    is_verified: Optional[bool] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_names(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_person_name(v) if v is not None else v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v

class UserSummary(BaseModel):
    id: int
    first_name: str
    last_name: str
    full_name: str
    email: str
    model_config = ConfigDict(from_attributes=True)

class UserResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    role: str
    department_id: Optional[int] = None
    department: Optional[DepartmentSummary] = None
    is_verified: bool = False
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()

class Token(BaseModel):
    access_token: str
    token_type: str
    user: UserResponse

# --- CLIENTES ---

class ClientBase(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    address: str = Field(..., min_length=1)
    phone_number_one: str
    phone_number_two: Optional[str] = None

    @field_validator("name")
    @classmethod
    def capitalize_words(cls, v: str) -> str:
        return " ".join(word.capitalize() for word in v.split())

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("phone_number_one", "phone_number_two")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return _validate_phone(v)

class ClientCreate(ClientBase):
    pass

class ClientUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    phone_number_one: Optional[str] = None
    phone_number_two: Optional[str] = None

    @field_validator("name")
    @classmethod
    def capitalize_words(cls, v: Optional[str]) -> Optional[str]:
        return " ".join(word.capitalize() for word in v.split()) if v else v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v

    @field_validator("phone_number_one", "phone_number_two")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return _validate_phone(v)

class ClientSummary(BaseModel):
    id: int
    name: str
    email: str
    model_config = ConfigDict(from_attributes=True)

class ClientResponse(ClientBase):
    id: int
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

# --- PROYECTOS ---

class ProjectBase(BaseModel):
    name: str = Field(..., min_length=1, description="Nombre del proyecto")
    description: Optional[str] = None
    client_id: int
    start_date: date
    due_date: date
    project_budget: float = Field(0.0, ge=0)
    status: StatusField = Status.PENDING
    priority: PriorityField = Priority.MEDIUM

class ProjectCreate(ProjectBase):
    department_ids: List[int] = Field(..., min_length=1)
    member_ids: List[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_dates(self):
        if self.due_date <= self.start_date:
            raise ValueError("Due date must be after start date")
        return self

class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    client_id: Optional[int] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    project_budget: Optional[float] = Field(None, ge=0)
    status: Optional[StatusField] = None
    priority: Optional[PriorityField] = None
    department_ids: Optional[List[int]] = Field(None, min_length=1)
    member_ids: Optional[List[int]] = None

class ProjectSummary(BaseModel):
    id: int
    name: str
    due_date: Optional[date] = None
    model_config = ConfigDict(from_attributes=True)

class ProjectResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    client: Optional[ClientSummary] = None
    departments: List[DepartmentSummary] = []
    members: List[UserSummary] = []
    start_date: date
    due_date: date
    project_budget: float
    status: str
    priority: str
    created_at: Optional[datetime] = None
    total_tasks: int = 0
    completed_tasks: int = 0
    progress: str

# --- TAREAS ---

START_AFTER_DUE_MESSAGE = "Start date cannot be after due date"

class TaskBase(BaseModel):
    title: str = Field(..., min_length=1, description="Título de la tarea")
    description: Optional[str] = None
    status: StatusField = Status.PENDING
    priority: PriorityField = Priority.MEDIUM
    start_date: Optional[date] = None
    due_date: date

class TaskCreate(TaskBase):
    project_id: int
    department_ids: List[int] = Field(..., min_length=1)
    assigned_to: List[int] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date and self.start_date > self.due_date:
            raise ValueError(START_AFTER_DUE_MESSAGE)
        return self

class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    status: Optional[StatusField] = None
    priority: Optional[PriorityField] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    department_ids: Optional[List[int]] = Field(None, min_length=1)
    assigned_to: Optional[List[int]] = Field(None, min_length=1)

class TaskResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    start_date: Optional[date] = None
    due_date: date
    created_at: Optional[datetime] = None
    project: Optional[ProjectSummary] = None
    departments: List[DepartmentSummary] = []
    assignees: List[UserSummary] = []

class TaskActivityResponse(BaseModel):
    id: int
    action: str
    details: Optional[str] = None
    performed_by: Optional[UserSummary] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

# --- COMENTARIOS ---

class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)
    parent_comment_id: Optional[int] = None
    attachments: List[str] = Field(default_factory=list)

class CommentReply(BaseModel):
    id: int
    content: str
    author: UserSummary
    project_id: Optional[int] = None
    task_id: Optional[int] = None
    parent_comment_id: Optional[int] = None
    attachments: List[str] = []
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

class CommentResponse(CommentReply):
    replies: List[CommentReply] = []

# --- REUNIONES ---

class MeetingBase(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    agenda: str = Field(..., min_length=1)
    date: dt.date
    start_time: time
    end_time: time
    project_id: Optional[int] = None
    status: MeetingStatus = MeetingStatus.SCHEDULED
    color: str = Field("#FF0000", pattern=HEX_COLOR_PATTERN)

class MeetingCreate(MeetingBase):
    department_ids: List[int] = Field(default_factory=list)
    invited_user_ids: Optional[List[int]] = None

    @model_validator(mode="after")
    def check_schedule(self):
        if self.date < dt.date.today():
            raise ValueError("Meeting date cannot be in the past")
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self

class MeetingUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    agenda: Optional[str] = None
    date: Optional[dt.date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    project_id: Optional[int] = None
    status: Optional[MeetingStatus] = None
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)
    department_ids: Optional[List[int]] = None
    invited_user_ids: Optional[List[int]] = None

class MeetingResponse(MeetingBase):
    id: int
    created_by_id: Optional[int] = None
    departments: List[DepartmentSummary] = []
    invited_users: List[UserSummary] = []
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

# --- EVENTOS ---

class EventBase(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    date: dt.date
    start_time: time
    end_time: time
    color: str = Field("#FF5733", pattern=HEX_COLOR_PATTERN)
    type: EventType = EventType.EVENT

class EventCreate(EventBase):
    notify_admins: bool = Field(False, description="Notificar solo a administradores")

    @model_validator(mode="after")
    def check_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self

class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    date: Optional[dt.date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)
    type: Optional[EventType] = None

class EventResponse(EventBase):
    id: int
    created_by_id: Optional[int] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

# --- REPORTES ---

SCOPE_FIELDS = {
    ReportScope.PROJECT: "project_id",
    ReportScope.CLIENT: "client_id",
    ReportScope.DEPARTMENT: "department_id",
    ReportScope.TASK: "task_id",
    ReportScope.USER: "user_id",
}

class ReportBase(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    scope: ScopeField
    project_id: Optional[int] = None
    client_id: Optional[int] = None
    department_id: Optional[int] = None
    task_id: Optional[int] = None
    user_id: Optional[int] = None
    email_recipients: List[EmailStr] = Field(default_factory=list)
    status: ReportStatusField = ReportStatus.DRAFT

class ReportCreate(ReportBase):
    @model_validator(mode="after")
    def check_scope_reference(self):
        field = SCOPE_FIELDS[self.scope]
        if getattr(self, field) is None:
            raise ValueError(f"{field} is required for {self.scope.value} reports")
        return self

class ReportUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    content: Optional[str] = Field(None, min_length=1)
    status: Optional[ReportStatusField] = None
    email_recipients: Optional[List[EmailStr]] = None

class ReportResponse(ReportBase):
    id: int
    created_by: Optional[UserSummary] = None
    sent_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

# --- CONTACTOS ---

INTERNAL_FIELDS = ("full_name", "email", "address", "phone", "department_id")
EXTERNAL_FIELDS = ("company", "contact_person", "external_email", "external_phone", "external_address")

class ContactBase(BaseModel):
    contact_type: ContactTypeField
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    department_id: Optional[int] = None
    company: Optional[str] = None
    contact_person: Optional[str] = None
    external_email: Optional[EmailStr] = None
    external_phone: Optional[str] = None
    external_address: Optional[str] = None

    @field_validator("phone", "external_phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return _validate_phone(v)

def missing_contact_fields(contact_type: ContactType, values: dict) -> List[str]:
    """Campos obligatorios que faltan según el tipo de contacto."""
    required = INTERNAL_FIELDS if contact_type == ContactType.INTERNAL else EXTERNAL_FIELDS
    return [f for f in required if values.get(f) in (None, "")]

class ContactCreate(ContactBase):
    @model_validator(mode="after")
    def check_required_fields(self):
        missing = missing_contact_fields(self.contact_type, self.model_dump())
        if missing:
            raise ValueError(f"Missing required fields for {self.contact_type.value} contact: {', '.join(missing)}")
        return self

class ContactUpdate(ContactBase):
    contact_type: Optional[ContactTypeField] = None

class ContactResponse(ContactBase):
    id: int
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

# --- DASHBOARD ---

class DashboardCounts(BaseModel):
    clients: int
    projects: int
    tasks: int
    reports: int

class StatusCount(BaseModel):
    status: str
    count: int

class UserTaskSummary(BaseModel):
    user_id: int
    name: str
    email: str
    completed: int
    pending: int
    overdue: int

class ClientProjectSummary(BaseModel):
    client_id: int
    name: str
    total_projects: int
    ongoing_projects: int
    verified_projects: int
    not_in_project: bool

class ClientStatusTotals(BaseModel):
    ongoing_clients: int
    verified_clients: int
    not_in_project_clients: int

class BudgetSummary(BaseModel):
    total_budget: float
    completed_budget: float
    remaining_budget: float

class DashboardResponse(BaseModel):
    counts: DashboardCounts
    project_summary: List[StatusCount]
    task_summary: List[StatusCount]
    user_summary: List[UserTaskSummary]
    client_summary: List[ClientProjectSummary]
    client_totals: ClientStatusTotals
    budget_summary: BudgetSummary
    recent_tasks: List[TaskResponse]
