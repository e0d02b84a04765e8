from __future__ import annotations

from typing import Protocol

from online_courses.models.course import (
    ELEMENT_TYPES,
    Course,
    CourseElement,
    MediaItem,
    WithdrawalReason,
)


class CatalogRepo(Protocol):
    async def get_course(self, course_id: str) -> Course | None: ...
    async def courses_exist(self) -> bool: ...
    async def get_element(self, item_id: str) -> CourseElement | None: ...
    async def list_elements(self, course_id: str) -> list[CourseElement]: ...
    async def get_media(self, video_id: str) -> MediaItem | None: ...
    async def list_withdrawal_reasons(self) -> list[WithdrawalReason]: ...


class InMemoryCatalogRepo:
    """Catalog for tests and local dev.  Seeded through the add_* helpers."""

    def __init__(self) -> None:
        self._courses: dict[str, Course] = {}
        self._elements: dict[str, CourseElement] = {}
        self._media: dict[str, MediaItem] = {}
        self._reasons: dict[int, WithdrawalReason] = {}

    # --- seeding ---

    def add_course(self, course: Course) -> None:
        self._courses[course.id] = course

    def add_element(self, element: CourseElement) -> None:
        self._elements[element.item_id] = element

    def add_media(self, media: MediaItem) -> None:
        self._media[media.video_id.lower()] = media

    def add_withdrawal_reason(self, reason: WithdrawalReason) -> None:
        self._reasons[reason.id] = reason

    def clear(self) -> None:
        self._courses.clear()
        self._elements.clear()
        self._media.clear()
        self._reasons.clear()

    # --- CatalogRepo ---

    async def get_course(self, course_id: str) -> Course | None:
        return self._courses.get(course_id)

    async def courses_exist(self) -> bool:
        return bool(self._courses)

    async def get_element(self, item_id: str) -> CourseElement | None:
        return self._elements.get(item_id)

    async def list_elements(self, course_id: str) -> list[CourseElement]:
        elements = [
            e
            for e in self._elements.values()
            if e.course_id == course_id
            and not e.deactivated
            and e.item_type in ELEMENT_TYPES
        ]
        return sorted(elements, key=lambda e: e.sequence)

    async def get_media(self, video_id: str) -> MediaItem | None:
        return self._media.get(video_id.lower())

    async def list_withdrawal_reasons(self) -> list[WithdrawalReason]:
        return sorted(self._reasons.values(), key=lambda r: r.id)
