from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from classgrid.services.time_model import TIME_PATTERN, parse_time_to_minutes


class TimeSlotBase(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    start_time: str
    end_time: str
    sort_order: int = Field(default=0, ge=0, le=1000)
    is_active: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time_format(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_order(self) -> "TimeSlotBase":
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


class TimeSlotCreate(TimeSlotBase):
    pass


class TimeSlotOut(TimeSlotBase):
    id: str
    duration_minutes: int

    model_config = {"from_attributes": True}


class BatchCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    department: str | None = Field(default=None, max_length=200)
    semester: int | None = Field(default=None, ge=1, le=20)


class BatchOut(BatchCreate):
    id: str

    model_config = {"from_attributes": True}


class SubjectCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    department: str | None = Field(default=None, max_length=200)
    is_module: bool = False

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return value.strip().upper()


class SubjectOut(SubjectCreate):
    id: str

    model_config = {"from_attributes": True}


class FacultyBase(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    designation: str = Field(default="Faculty", min_length=1, max_length=200)
    email: EmailStr | None = None
    department: str = Field(min_length=1, max_length=200)
    max_hours: int = Field(default=20, ge=1, le=200)
    is_active: bool = True


class FacultyCreate(FacultyBase):
    pass


class FacultyUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    designation: str | None = Field(default=None, min_length=1, max_length=200)
    email: EmailStr | None = None
    department: str | None = Field(default=None, min_length=1, max_length=200)
    max_hours: int | None = Field(default=None, ge=1, le=200)
    is_active: bool | None = None


class FacultyOut(FacultyBase):
    id: str
    email: str | None = None
    weekly_hours: float = 0.0

    model_config = {"from_attributes": True}
