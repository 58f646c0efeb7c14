"""Service layer — business logic orchestration."""


class ServiceError(Exception):
    """Base service exception."""


class NotFoundError(ServiceError):
    """Unknown commit reference, branch or package."""


class ValidationError(ServiceError):
    """Invalid caller input."""
