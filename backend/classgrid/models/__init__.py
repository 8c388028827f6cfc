from classgrid.models.batch import Batch  # noqa: F401
from classgrid.models.calendar import AcademicTerm, ExamPeriod, Holiday  # noqa: F401
from classgrid.models.faculty import Faculty  # noqa: F401
from classgrid.models.subject import Subject  # noqa: F401
from classgrid.models.time_slot import TimeSlot  # noqa: F401
from classgrid.models.timetable_entry import EntryType, TimetableEntry  # noqa: F401
