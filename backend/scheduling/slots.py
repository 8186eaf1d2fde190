"""
Slot generation.

Expands a doctor's weekly schedule templates into the concrete time slots of
one calendar date. Pure: no session, no I/O. The only outside input is the
reference time used to drop slots that have already started.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator, Protocol


class TemplateLike(Protocol):
    day_of_week: int
    start_time: time
    end_time: time
    slot_duration: int


@dataclass(frozen=True)
class Slot:
    """A bookable window. Equal when doctor, date and start time match."""

    doctor_profile_id: str
    specialty_id: str = field(compare=False)
    date: date
    start_time: time
    end_time: time = field(compare=False)

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.start_time)

    @property
    def ends_at(self) -> datetime:
        return datetime.combine(self.date, self.end_time)


def day_of_week(target_date: date) -> int:
    """Weekday index counted from Sunday (0) to Saturday (6)."""
    return target_date.isoweekday() % 7


def iterate_slot_windows(start_time: time, end_time: time, slot_duration: int) -> Iterator[tuple[time, time]]:
    """Yield consecutive ``(start, end)`` windows; a trailing partial window is dropped."""
    if slot_duration <= 0:
        raise ValueError('Slot duration must be a positive number of minutes.')

    step = timedelta(minutes=slot_duration)
    current = datetime.combine(date.min, start_time.replace(second=0, microsecond=0))
    limit = datetime.combine(date.min, end_time)

    while current + step <= limit:
        yield current.time(), (current + step).time()
        current += step


def generate_slots(
    doctor_profile_id: str,
    specialty_id: str,
    templates: Iterable[TemplateLike],
    target_date: date,
    now: datetime | None = None,
) -> list[Slot]:
    reference = now or datetime.now()
    weekday = day_of_week(target_date)

    slots: list[Slot] = []
    for template in templates:
        if template.day_of_week != weekday:
            continue

        for slot_start, slot_end in iterate_slot_windows(
            template.start_time, template.end_time, template.slot_duration
        ):
            if datetime.combine(target_date, slot_start) <= reference:
                continue
            slots.append(
                Slot(
                    doctor_profile_id=doctor_profile_id,
                    specialty_id=specialty_id,
                    date=target_date,
                    start_time=slot_start,
                    end_time=slot_end,
                )
            )

    # Templates arrive in no particular order; sort is stable for equal starts.
    slots.sort(key=lambda slot: slot.start_time)
    return slots


def find_slot(slots: Iterable[Slot], start_time: time) -> Slot | None:
    for slot in slots:
        if slot.start_time == start_time:
            return slot
    return None
