"""
Application-wide exception hierarchy.

Services raise these types; the assistant entry points and blueprints
translate them into user-facing messages or JSON error bodies in one place,
so raw exception text never reaches a caller.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Task", resource_id=42)
    raise ValidationError("A title is required to create a task.")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given project.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Task").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        project_id: Optional scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        project_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.project_id = project_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if project_id is not None:
            msg += f" (project={project_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    The message is user-facing: the assistant shows it verbatim.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PlanExecutionError(Exception):
    """Raised when a plan cannot be carried out at execution time.

    ``affected_count`` holds the rows already committed before the failure;
    bulk operations are not rolled back.
    """

    def __init__(self, message: str, affected_count: int = 0) -> None:
        self.affected_count = affected_count
        super().__init__(message)
