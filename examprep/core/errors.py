"""
Domain exceptions raised by the services and rendered by the app-level handler.
"""
from typing import Any, Dict, Iterable, Optional


class ExamPrepError(Exception):
    """Base error. Carries the HTTP status and a stable error code."""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class NotFoundError(ExamPrepError):
    status_code = 404
    error_code = "NOT_FOUND"


class PaperNotFound(NotFoundError):
    error_code = "PAPER_NOT_FOUND"

    def __init__(self, paper_id: str):
        super().__init__(f"Exam paper '{paper_id}' not found", {"paper_id": paper_id})


class SubmissionNotFound(NotFoundError):
    error_code = "SUBMISSION_NOT_FOUND"

    def __init__(self, submission_id: str):
        super().__init__(f"Submission '{submission_id}' not found", {"submission_id": submission_id})


class QuestionNotFound(NotFoundError):
    error_code = "QUESTION_NOT_FOUND"

    def __init__(self, question_ids: Iterable[str]):
        ids = sorted(question_ids)
        super().__init__(f"Unknown question ids: {', '.join(ids)}", {"question_ids": ids})


class SubjectNotFound(NotFoundError):
    error_code = "SUBJECT_NOT_FOUND"

    def __init__(self, subject_id: str):
        super().__init__(f"Subject '{subject_id}' not found", {"subject_id": subject_id})


class ProgressNotFound(NotFoundError):
    error_code = "PROGRESS_NOT_FOUND"

    def __init__(self, progress_id: str):
        super().__init__(f"Practice progress '{progress_id}' not found", {"progress_id": progress_id})


class SessionNotFound(NotFoundError):
    error_code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str):
        super().__init__(f"Practice session '{session_id}' not found", {"session_id": session_id})


class UnsupportedContentType(NotFoundError):
    error_code = "UNSUPPORTED_CONTENT_TYPE"

    def __init__(self, content_type: str):
        super().__init__(f"Unsupported content type '{content_type}'", {"content_type": content_type})


class OwnershipError(ExamPrepError):
    status_code = 403
    error_code = "FORBIDDEN"

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"You do not have access to this {resource}", {"resource": resource, "resource_id": resource_id})


class SubmissionFinalized(ExamPrepError):
    status_code = 409
    error_code = "SUBMISSION_FINALIZED"

    def __init__(self, submission_id: str):
        super().__init__(f"Submission '{submission_id}' is already finalized", {"submission_id": submission_id})


class SubmissionNotFinalized(ExamPrepError):
    status_code = 409
    error_code = "SUBMISSION_NOT_FINALIZED"

    def __init__(self, submission_id: str):
        super().__init__(f"Submission '{submission_id}' has not been finalized", {"submission_id": submission_id})


class InvalidRequest(ExamPrepError):
    status_code = 400
    error_code = "INVALID_REQUEST"
