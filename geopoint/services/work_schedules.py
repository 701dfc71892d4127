"""Fixed work-schedule table.

Schedules are a closed set keyed by ``WorkScheduleType``; users reference one
of them by value and there is no path to create or edit them at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time

from geopoint.models import WorkScheduleType

WEEKDAY_NAMES = ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY")
WEEKDAYS = WEEKDAY_NAMES[:5]
DEFAULT_TOLERANCE_MINUTES = 10


@dataclass(frozen=True, slots=True)
class WorkSchedule:
    type: WorkScheduleType
    start: time
    end: time
    tolerance_minutes: int = DEFAULT_TOLERANCE_MINUTES
    work_days: tuple[str, ...] = WEEKDAYS

    @property
    def planned_minutes(self) -> int:
        return (self.end.hour * 60 + self.end.minute) - (self.start.hour * 60 + self.start.minute)

    def is_work_day(self, day: date) -> bool:
        return WEEKDAY_NAMES[day.weekday()] in self.work_days

    def as_dict(self) -> dict[str, object]:
        return {
            "type": self.type,
            "start_time": self.start.strftime("%H:%M"),
            "end_time": self.end.strftime("%H:%M"),
            "tolerance_minutes": self.tolerance_minutes,
            "work_days": list(self.work_days),
        }


WORK_SCHEDULES: dict[WorkScheduleType, WorkSchedule] = {
    WorkScheduleType.COMMERCIAL: WorkSchedule(WorkScheduleType.COMMERCIAL, time(8, 0), time(18, 0)),
    WorkScheduleType.INTERN: WorkSchedule(WorkScheduleType.INTERN, time(8, 0), time(15, 0)),
    WorkScheduleType.CONTRACTOR: WorkSchedule(WorkScheduleType.CONTRACTOR, time(9, 0), time(18, 0)),
}


def list_work_schedules() -> list[WorkSchedule]:
    return [WORK_SCHEDULES[item] for item in WorkScheduleType]


def get_work_schedule(schedule_type: WorkScheduleType) -> WorkSchedule:
    return WORK_SCHEDULES[schedule_type]
