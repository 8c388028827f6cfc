import datetime as dt

from pydantic import BaseModel, Field, model_validator


class HolidayCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    date: dt.date
    department: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    undo_timeout_seconds: float | None = Field(default=None, gt=0)


class HolidayOut(BaseModel):
    id: str
    name: str
    date: dt.date
    department: str | None
    description: str | None

    model_config = {"from_attributes": True}


class HolidayMutationResponse(BaseModel):
    message: str
    holiday: HolidayOut
    undo_operation_id: str | None = None
    undo_expires_at: dt.datetime | None = None


class DateRange(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    start_date: dt.date
    end_date: dt.date

    @model_validator(mode="after")
    def validate_range(self) -> "DateRange":
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class ExamPeriodCreate(DateRange):
    department: str | None = Field(default=None, max_length=200)
    block_regular_classes: bool = True


class ExamPeriodOut(ExamPeriodCreate):
    id: str

    model_config = {"from_attributes": True}


class AcademicTermCreate(DateRange):
    pass


class AcademicTermOut(AcademicTermCreate):
    id: str

    model_config = {"from_attributes": True}
