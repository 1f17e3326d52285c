"""Month calendar grids.

Pure date arithmetic shared by the availability editor and the booking calendar.
Nothing in here reads the clock: callers pass ``today`` explicitly.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator, Literal, Mapping, Sequence

GRID_COLUMNS = 7
GRID_ROWS = 6
GRID_SIZE = GRID_COLUMNS * GRID_ROWS

DATE_FORMAT = '%Y-%m-%d'

MonthDirection = Literal['prev', 'next']


@dataclass(frozen=True)
class CalendarCell:
    day_number: int
    is_current_month: bool
    is_today: bool = False
    full_date: date | None = None
    has_availability: bool = False
    items: tuple = ()
    overflow_count: int = 0


@dataclass(frozen=True)
class MonthGrid:
    """Sunday-first 6x7 grid for one month.

    Iterating yields 42 cells: trailing days of the previous month, every day of
    the month, then leading days of the next month. Filler cells carry no date
    and never receive markers. The grid holds no cells of its own, so each
    iteration recomputes them and two grids with equal inputs are equal.
    """

    year: int
    month: int
    today: date | None = None

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f'month must be between 1 and 12, got {self.month}')
        try:
            self.grid_start + timedelta(days=GRID_SIZE - 1)
        except OverflowError as exc:
            raise ValueError(f'{self.year}-{self.month:02d} does not fit a full calendar grid') from exc

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def grid_start(self) -> date:
        leading_days = (self.first_day.weekday() + 1) % GRID_COLUMNS
        return self.first_day - timedelta(days=leading_days)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    def __len__(self) -> int:
        return GRID_SIZE

    def __iter__(self) -> Iterator[CalendarCell]:
        grid_start = self.grid_start

        for offset in range(GRID_SIZE):
            day = grid_start + timedelta(days=offset)
            if (day.year, day.month) == (self.year, self.month):
                yield CalendarCell(
                    day_number=day.day,
                    is_current_month=True,
                    is_today=day == self.today,
                    full_date=day,
                )
            else:
                yield CalendarCell(day_number=day.day, is_current_month=False)

    def weeks(self) -> list[list[CalendarCell]]:
        cells = list(self)
        return [cells[row:row + GRID_COLUMNS] for row in range(0, GRID_SIZE, GRID_COLUMNS)]


def build_month_grid(year: int, month: int, today: date | None = None) -> MonthGrid:
    return MonthGrid(year=year, month=month, today=today)


def shift_month(year: int, month: int, direction: MonthDirection) -> tuple[int, int]:
    if direction == 'prev':
        return (year - 1, 12) if month == 1 else (year, month - 1)
    if direction == 'next':
        return (year + 1, 1) if month == 12 else (year, month + 1)
    raise ValueError(f'Unknown month direction: {direction!r}')


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    """First and last instant of a month, both inclusive."""
    last_day = calendar.monthrange(year, month)[1]
    return (
        datetime(year, month, 1),
        datetime.combine(date(year, month, last_day), time.max),
    )


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def parse_date(value: str) -> date:
    return datetime.strptime(value.strip(), DATE_FORMAT).date()


def mark_availability(grid: Iterable[CalendarCell], windows: Iterable) -> list[CalendarCell]:
    available_dates = {window.date for window in windows if window.is_available}
    return [
        replace(cell, has_availability=cell.full_date in available_dates) if cell.is_current_month else cell
        for cell in grid
    ]


def mark_bookings(
    grid: Iterable[CalendarCell],
    bookings_by_day: Mapping[date, Sequence],
    preview_limit: int,
) -> list[CalendarCell]:
    """Attach up to ``preview_limit`` bookings to each in-month cell and count the rest."""
    marked: list[CalendarCell] = []
    for cell in grid:
        day_bookings = bookings_by_day.get(cell.full_date, ()) if cell.is_current_month else ()
        if day_bookings:
            cell = replace(
                cell,
                items=tuple(day_bookings[:preview_limit]),
                overflow_count=max(0, len(day_bookings) - preview_limit),
            )
        marked.append(cell)
    return marked
