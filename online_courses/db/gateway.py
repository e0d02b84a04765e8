"""Repository wiring.

Same rule as engine.py and redis.py: PostgreSQL repositories when
DATABASE_URL is configured, in-memory ones otherwise.  Services and API
modules import the singletons from here; tests reset the in-memory ones
through their clear() helpers.
"""

from __future__ import annotations

from online_courses.db.engine import async_session_factory
from online_courses.repos.catalog_repo import CatalogRepo, InMemoryCatalogRepo
from online_courses.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from online_courses.repos.note_repo import InMemoryNoteRepo, NoteRepo
from online_courses.repos.preference_repo import InMemoryPreferenceRepo, PreferenceRepo
from online_courses.repos.progress_repo import InMemoryProgressRepo, ProgressRepo
from online_courses.repos.quiz_result_repo import InMemoryQuizResultRepo, QuizResultRepo

if async_session_factory is not None:
    from online_courses.repos.pg_catalog_repo import PgCatalogRepo
    from online_courses.repos.pg_enrollment_repo import PgEnrollmentRepo
    from online_courses.repos.pg_note_repo import PgNoteRepo
    from online_courses.repos.pg_preference_repo import PgPreferenceRepo
    from online_courses.repos.pg_progress_repo import PgProgressRepo
    from online_courses.repos.pg_quiz_result_repo import PgQuizResultRepo

    catalog_repo: CatalogRepo = PgCatalogRepo(async_session_factory)
    enrollment_repo: EnrollmentRepo = PgEnrollmentRepo(async_session_factory)
    progress_repo: ProgressRepo = PgProgressRepo(async_session_factory)
    quiz_result_repo: QuizResultRepo = PgQuizResultRepo(async_session_factory)
    note_repo: NoteRepo = PgNoteRepo(async_session_factory)
    preference_repo: PreferenceRepo = PgPreferenceRepo(async_session_factory)
else:
    _catalog = InMemoryCatalogRepo()
    _enrollments = InMemoryEnrollmentRepo()
    catalog_repo = _catalog
    enrollment_repo = _enrollments
    progress_repo = InMemoryProgressRepo(_catalog, _enrollments)
    quiz_result_repo = InMemoryQuizResultRepo()
    note_repo = InMemoryNoteRepo()
    preference_repo = InMemoryPreferenceRepo()
