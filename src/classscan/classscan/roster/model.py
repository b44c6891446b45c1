from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Course:
    course_id: int
    code: str
    name: str
    professor_id: int
    faculty_id: Optional[int] = None
    device_binding_enabled: bool = False


@dataclass(frozen=True)
class Group:
    group_id: int
    course_id: int
    name: str


@dataclass(frozen=True)
class EnrolledGroup:
    """A group a student belongs to, with its course for summaries."""

    course_id: int
    course_name: str
    group_id: int
    group_name: str
