"""Domain error taxonomy.

Services raise these; the handlers registered in main.py turn them into a
small fixed set of HTTP responses.  Messages on PersistenceError and
ExternalServiceError are never sent to clients, with the exception of
EnrollmentError whose message is written to be user-facing.
"""

from __future__ import annotations


class OnlineCoursesError(Exception):
    """Base class for errors raised by the service layer."""


class ValidationError(OnlineCoursesError, ValueError):
    """Malformed identifier or missing required field.  Nothing was written."""


class NotFoundError(OnlineCoursesError):
    """A referenced entity (quiz definition, CRM contact, result) is absent."""


class PersistenceError(OnlineCoursesError):
    """The relational store was unreachable or a statement failed."""


class EnrollmentError(PersistenceError):
    """Enroll/withdraw failed; the message is safe to show to the learner."""


class ExternalServiceError(OnlineCoursesError):
    """An upstream HTTP service failed or returned malformed data."""

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service


class NoteDecryptionError(ValidationError):
    """A stored note could not be decoded or decrypted."""
