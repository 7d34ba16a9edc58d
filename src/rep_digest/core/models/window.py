"""
QueryWindow model: the creation-date range a digest run covers.
"""

from datetime import date, timedelta

from pydantic import BaseModel, model_validator


class QueryWindow(BaseModel):
    """
    Half-open date range, start <= created < end.

    Attributes:
        start: First day included
        end: First day excluded
    """

    start: date
    end: date

    @model_validator(mode="after")
    def check_order(self):
        if self.end <= self.start:
            raise ValueError(f"window end {self.end} must be after start {self.start}")
        return self

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end

    @property
    def label(self) -> str:
        """Month label when the window is one calendar month, else start..end."""
        if self.start.day == 1 and self.end == _first_of_next_month(self.start):
            return self.start.strftime("%Y-%m")
        return f"{self.start.isoformat()}..{self.end.isoformat()}"

    class Config:
        frozen = True


def _first_of_next_month(day: date) -> date:
    return (day.replace(day=1) + timedelta(days=32)).replace(day=1)


def previous_month_window(reference: date | None = None) -> QueryWindow:
    """
    Return the previous full calendar month relative to ``reference``.

    A run on 2026-10-19 covers 2026-09-01 up to, not including, 2026-10-01.
    The same reference date always yields the same window, which is what
    lets a restarted run re-derive its input.
    """
    ref = reference or date.today()
    end = ref.replace(day=1)
    start = (end - timedelta(days=1)).replace(day=1)
    return QueryWindow(start=start, end=end)
