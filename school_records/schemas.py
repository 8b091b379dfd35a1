"""
Request schemas for the School Records API.

Each record collection has a create model, an update model (every field
optional, only the fields actually sent are applied) and a query model for
its list endpoint. Stored documents use the same snake_case field names.
"""

from datetime import date, datetime
from typing import Annotated, List, Literal, Optional, Union

from bson import ObjectId
from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field


def _object_id(value: str) -> str:
    if not ObjectId.is_valid(value):
        raise ValueError("must be a valid ObjectId")
    return value


ObjectIdStr = Annotated[str, AfterValidator(_object_id)]
DateInput = Union[datetime, date]
# Query models have a field called `date`; annotate through this name instead.
Day = date
SortOrder = Literal["asc", "desc"]

MOBILE_PATTERN = r"^\d{10,15}$"
LOCAL_PHONE_PATTERN = r"^\d{11}$"
TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

Role = Literal["super_admin", "user_admin", "staff", "student"]
Gender = Literal["male", "female", "other"]
Religion = Literal["islam", "hinduism", "christianity", "buddhism", "other"]


class RecordModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


# ----------------------- Accounts -----------------------

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class RegisterRequest(RecordModel):
    username: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    role: Role = "staff"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class PublicUser(BaseModel):
    id: str
    username: str
    email: EmailStr
    role: str


# ----------------------- Student attendance -----------------------

AttendanceType = Literal["present", "absent", "late", "leave"]


class CreateAttendance(RecordModel):
    class_id: ObjectIdStr
    batch_id: ObjectIdStr
    attendance_date: DateInput
    class_start_time: Optional[str] = Field(None, pattern=TIME_PATTERN, description="HH:mm, 24h")
    class_end_time: Optional[str] = Field(None, pattern=TIME_PATTERN, description="HH:mm, 24h")
    attendance_type: AttendanceType = "present"
    remarks: str = Field("", max_length=500)
    is_active: bool = True


class UpdateAttendance(RecordModel):
    class_id: Optional[ObjectIdStr] = None
    batch_id: Optional[ObjectIdStr] = None
    attendance_date: Optional[DateInput] = None
    class_start_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    class_end_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    attendance_type: Optional[AttendanceType] = None
    remarks: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None


class AttendanceQuery(BaseModel):
    search: Optional[str] = None
    class_id: Optional[str] = None
    batch_id: Optional[str] = None
    date: Optional[Day] = None
    start_date: Optional[Day] = None
    end_date: Optional[Day] = None
    attendance_type: Optional[AttendanceType] = None
    created_by: Optional[str] = None
    is_active: Optional[bool] = None
    page: int = 1
    limit: int = 10
    sort_by: Literal["attendance_date", "created_at", "updated_at"] = "created_at"
    sort_order: SortOrder = "desc"


# ----------------------- Homework -----------------------

class CreateHomework(RecordModel):
    homework_name: str = Field(..., min_length=2, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    class_id: ObjectIdStr
    batch_ids: List[ObjectIdStr] = Field(..., min_length=1)
    subject_id: ObjectIdStr
    homework_date: DateInput
    is_active: bool = True


class UpdateHomework(RecordModel):
    homework_name: Optional[str] = Field(None, min_length=2, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    class_id: Optional[ObjectIdStr] = None
    batch_ids: Optional[List[ObjectIdStr]] = Field(None, min_length=1)
    subject_id: Optional[ObjectIdStr] = None
    homework_date: Optional[DateInput] = None
    is_active: Optional[bool] = None


class HomeworkQuery(BaseModel):
    search: Optional[str] = None
    class_id: Optional[str] = None
    subject_id: Optional[str] = None
    batch_id: Optional[str] = None
    date: Optional[Day] = None
    created_by: Optional[str] = None
    is_active: Optional[bool] = None
    page: int = 1
    limit: int = 10
    sort_by: Literal["homework_name", "homework_date", "created_at", "updated_at"] = "created_at"
    sort_order: SortOrder = "desc"


# ----------------------- Students -----------------------

AdmissionType = Literal["monthly", "course"]
StudentStatus = Literal["active", "inactive", "suspended", "completed"]


class CreateStudent(RecordModel):
    registration_id: Optional[str] = Field(None, min_length=1, description="Generated when omitted")
    class_id: ObjectIdStr
    batch_id: ObjectIdStr
    name_english: str = Field(..., min_length=1)
    subunit_category: Optional[str] = None
    date_of_birth: DateInput
    gender: Gender
    religion: Religion = "islam"
    student_mobile_number: Optional[str] = Field(None, pattern=MOBILE_PATTERN)
    ward_number: Optional[str] = Field(None, pattern=r"^\d+$")
    present_address: str = Field(..., min_length=1)
    permanent_address: str = Field(..., min_length=1)
    photo_url: Optional[str] = None
    father_name: str = Field(..., min_length=1)
    father_mobile_number: str = Field(..., pattern=MOBILE_PATTERN)
    mother_name: Optional[str] = None
    mother_mobile_number: Optional[str] = Field(None, pattern=MOBILE_PATTERN)
    admission_type: AdmissionType
    admission_fee: float = Field(0, ge=0)
    monthly_tuition_fee: float = Field(0, ge=0)
    course_fee: float = Field(0, ge=0)
    paid_amount: float = Field(0, ge=0)
    admission_date: Optional[DateInput] = None
    referred_by: Optional[str] = None
    status: StudentStatus = "active"
    is_active: bool = True
    remarks: Optional[str] = None


class UpdateStudent(RecordModel):
    registration_id: Optional[str] = Field(None, min_length=1)
    class_id: Optional[ObjectIdStr] = None
    batch_id: Optional[ObjectIdStr] = None
    name_english: Optional[str] = Field(None, min_length=1)
    subunit_category: Optional[str] = None
    date_of_birth: Optional[DateInput] = None
    gender: Optional[Gender] = None
    religion: Optional[Religion] = None
    student_mobile_number: Optional[str] = Field(None, pattern=MOBILE_PATTERN)
    ward_number: Optional[str] = Field(None, pattern=r"^\d+$")
    present_address: Optional[str] = Field(None, min_length=1)
    permanent_address: Optional[str] = Field(None, min_length=1)
    photo_url: Optional[str] = None
    father_name: Optional[str] = Field(None, min_length=1)
    father_mobile_number: Optional[str] = Field(None, pattern=MOBILE_PATTERN)
    mother_name: Optional[str] = None
    mother_mobile_number: Optional[str] = Field(None, pattern=MOBILE_PATTERN)
    admission_type: Optional[AdmissionType] = None
    admission_fee: Optional[float] = Field(None, ge=0)
    monthly_tuition_fee: Optional[float] = Field(None, ge=0)
    course_fee: Optional[float] = Field(None, ge=0)
    paid_amount: Optional[float] = Field(None, ge=0)
    admission_date: Optional[DateInput] = None
    referred_by: Optional[str] = None
    status: Optional[StudentStatus] = None
    is_active: Optional[bool] = None
    remarks: Optional[str] = None


class StudentStatusUpdate(BaseModel):
    status: StudentStatus
    is_active: bool


class PaymentRequest(BaseModel):
    amount: float = Field(..., gt=0)


class StudentQuery(BaseModel):
    search: Optional[str] = None
    class_id: Optional[str] = None
    batch_id: Optional[str] = None
    status: Optional[StudentStatus] = None
    is_active: Optional[bool] = None
    gender: Optional[Gender] = None
    admission_type: Optional[AdmissionType] = None
    page: int = 1
    limit: int = 10


# ----------------------- Teachers -----------------------

BloodGroup = Literal["A+", "A-", "B+", "B-", "O+", "O-", "AB+", "AB-"]
Designation = Literal[
    "head_teacher", "assistant_teacher", "subject_teacher", "co_teacher", "visiting_teacher"
]
AssignType = Literal["monthly_basis", "class_basis", "both"]
TeacherStatus = Literal["active", "inactive", "suspended", "resigned"]


class CreateTeacher(RecordModel):
    full_name: str = Field(..., min_length=1)
    father_name: Optional[str] = None
    mother_name: Optional[str] = None
    religion: Religion = "islam"
    gender: Gender
    date_of_birth: DateInput
    contact_number: str = Field(..., pattern=LOCAL_PHONE_PATTERN)
    emergency_contact_number: str = Field(..., pattern=LOCAL_PHONE_PATTERN)
    present_address: str = Field(..., min_length=1)
    permanent_address: str = Field(..., min_length=1)
    whatsapp_number: Optional[str] = Field(None, pattern=LOCAL_PHONE_PATTERN)
    email: EmailStr
    system_email: Optional[EmailStr] = None
    secondary_email: Optional[EmailStr] = None
    national_id: Optional[str] = Field(None, min_length=1)
    blood_group: Optional[BloodGroup] = None
    profile_picture: Optional[str] = None
    password: str = Field(..., min_length=6)
    designation: Designation
    assign_type: AssignType
    monthly_total_class: Optional[int] = Field(None, ge=0)
    salary: Optional[float] = Field(None, ge=0)
    joining_date: DateInput
    status: TeacherStatus = "active"
    is_active: bool = True
    remarks: Optional[str] = None


class UpdateTeacher(RecordModel):
    full_name: Optional[str] = Field(None, min_length=1)
    father_name: Optional[str] = None
    mother_name: Optional[str] = None
    religion: Optional[Religion] = None
    gender: Optional[Gender] = None
    date_of_birth: Optional[DateInput] = None
    contact_number: Optional[str] = Field(None, pattern=LOCAL_PHONE_PATTERN)
    emergency_contact_number: Optional[str] = Field(None, pattern=LOCAL_PHONE_PATTERN)
    present_address: Optional[str] = Field(None, min_length=1)
    permanent_address: Optional[str] = Field(None, min_length=1)
    whatsapp_number: Optional[str] = Field(None, pattern=LOCAL_PHONE_PATTERN)
    email: Optional[EmailStr] = None
    system_email: Optional[EmailStr] = None
    secondary_email: Optional[EmailStr] = None
    national_id: Optional[str] = Field(None, min_length=1)
    blood_group: Optional[BloodGroup] = None
    profile_picture: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6)
    designation: Optional[Designation] = None
    assign_type: Optional[AssignType] = None
    monthly_total_class: Optional[int] = Field(None, ge=0)
    salary: Optional[float] = Field(None, ge=0)
    joining_date: Optional[DateInput] = None
    status: Optional[TeacherStatus] = None
    is_active: Optional[bool] = None
    remarks: Optional[str] = None


class TeacherStatusUpdate(BaseModel):
    status: TeacherStatus
    is_active: bool


class ChangePasswordRequest(BaseModel):
    new_password: str = Field(..., min_length=6)


class TeacherQuery(BaseModel):
    search: Optional[str] = None
    designation: Optional[Designation] = None
    assign_type: Optional[AssignType] = None
    status: Optional[TeacherStatus] = None
    is_active: Optional[bool] = None
    gender: Optional[Gender] = None
    religion: Optional[Religion] = None
    created_by: Optional[str] = None
    page: int = 1
    limit: int = 10
