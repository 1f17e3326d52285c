"""Per-studio availability editing session.

The editor keeps a staging list that mirrors the store for one selected date.
Each added or removed window is committed on its own, and after every commit
(successful or not) the staging list is re-read from the store.
"""

import logging
from dataclasses import dataclass
from datetime import date, time
from decimal import Decimal
from enum import Enum

from studio_scheduler.core.errors import InvalidTransition, NotFound, SchedulingError, StoreUnavailable
from studio_scheduler.scheduling.availability_store import AvailabilityStore, validate_window_range
from studio_scheduler.scheduling.records import AvailabilityWindow
from studio_scheduler.scheduling.time_grid import CalendarCell, MonthDirection, build_month_grid, shift_month

logger = logging.getLogger(__name__)


class EditorState(str, Enum):
    IDLE = 'idle'
    DATE_SELECTED = 'date_selected'
    COMMITTING = 'committing'


@dataclass(frozen=True)
class StagedWindow:
    day: date
    start_time: time
    end_time: time
    price_override: Decimal | None = None
    window_id: int | None = None

    @classmethod
    def from_window(cls, window: AvailabilityWindow) -> 'StagedWindow':
        return cls(
            day=window.date,
            start_time=window.start_time,
            end_time=window.end_time,
            price_override=window.price_override,
            window_id=window.id,
        )

    def matches(self, window: AvailabilityWindow) -> bool:
        return (window.date, window.start_time, window.end_time) == (self.day, self.start_time, self.end_time)


class AvailabilityEditor:
    def __init__(self, store: AvailabilityStore, studio_id: int, today: date) -> None:
        self.store = store
        self.studio_id = studio_id
        self.today = today
        self.year = today.year
        self.month = today.month
        self.state = EditorState.IDLE
        self.selected_date: date | None = None
        self.staging: list[StagedWindow] = []

    def navigate_month(self, direction: MonthDirection) -> tuple[int, int]:
        self.year, self.month = shift_month(self.year, self.month, direction)
        return self.year, self.month

    def month_grid(self) -> list[CalendarCell]:
        grid = build_month_grid(self.year, self.month, today=self.today)
        return self.store.availability_grid(self.studio_id, grid)

    def select_date(self, day: date) -> list[StagedWindow]:
        self._require_not_committing()

        windows = self.store.windows_for_date(self.studio_id, day)
        self.selected_date = day
        self.staging = [StagedWindow.from_window(window) for window in windows]
        self.state = EditorState.DATE_SELECTED
        return list(self.staging)

    def stage_new_window(
        self,
        start_time: time,
        end_time: time,
        price_override: Decimal | None = None,
    ) -> AvailabilityWindow:
        self._require_date_selected()
        validate_window_range(start_time, end_time, price_override)

        staged = StagedWindow(
            day=self.selected_date,
            start_time=start_time,
            end_time=end_time,
            price_override=price_override,
        )
        self.staging.append(staged)
        self.state = EditorState.COMMITTING

        try:
            window = self.store.create_window(
                self.studio_id,
                self.selected_date,
                start_time,
                end_time,
                price_override=price_override,
            )
        except SchedulingError:
            self.state = EditorState.DATE_SELECTED
            if not self._reload_staging():
                self.staging.remove(staged)
            raise

        self.state = EditorState.DATE_SELECTED
        if not self._reload_staging():
            self.staging[self.staging.index(staged)] = StagedWindow.from_window(window)
        return window

    def remove_window(self, index: int) -> None:
        self._require_date_selected()

        if not 0 <= index < len(self.staging):
            raise NotFound('No staged availability at that position.')

        staged = self.staging[index]
        persisted = next(
            (window for window in self.store.windows_for_date(self.studio_id, staged.day) if staged.matches(window)),
            None,
        )

        if persisted is None:
            del self.staging[index]
            return

        self.state = EditorState.COMMITTING
        try:
            self.store.delete_window(persisted.id, studio_id=self.studio_id)
        finally:
            self.state = EditorState.DATE_SELECTED

        if not self._reload_staging():
            del self.staging[index]

    def _reload_staging(self) -> bool:
        try:
            windows = self.store.windows_for_date(self.studio_id, self.selected_date)
        except StoreUnavailable:
            logger.warning('Could not refresh staged availability for studio %s', self.studio_id)
            return False

        self.staging = [StagedWindow.from_window(window) for window in windows]
        return True

    def _require_not_committing(self) -> None:
        if self.state == EditorState.COMMITTING:
            raise InvalidTransition('Another availability change is still being saved.')

    def _require_date_selected(self) -> None:
        self._require_not_committing()
        if self.state != EditorState.DATE_SELECTED:
            raise InvalidTransition('Select a date before editing availability.')
