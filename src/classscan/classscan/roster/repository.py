from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import Course, EnrolledGroup, Group


class RosterDirectory(Protocol):
    """Read-only view of courses, groups and enrollments.

    Course/group/roster management is owned by another component; the
    attendance engine only reads from it.
    """

    def get_course(self, course_id: int) -> Optional[Course]:
        raise NotImplementedError

    def get_group(self, group_id: int) -> Optional[Group]:
        raise NotImplementedError

    def is_enrolled(self, *, student_id: int, group_id: int) -> bool:
        raise NotImplementedError

    def list_enrolled_groups(self, student_id: int) -> Sequence[EnrolledGroup]:
        raise NotImplementedError
