"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere. Every checklist-engine
failure has its own subclass so callers can tell conditions apart without
parsing messages.

Taxonomy:
    NotFoundError    — template / instance / item / customer missing or inactive
    ConflictError    — duplicate instance, blocked-item completion, illegal item transition
    ValidationError  — cross-template dependency, dependency cycle, missing document,
                       skip of a required item
    InvalidLifecycleTransitionError — customer lifecycle refused a transition

Usage:
    from onboarding.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ChecklistTemplate", resource_id=template_id)
    raise ValidationError("name is required", details={"name": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-tenant access attempts,
    so a caller cannot learn that another tenant's record exists.

    Args:
        resource: Human-readable model/entity name (e.g. "ChecklistTemplate").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        tenant_id: Optional — the scope that was enforced. For debug logging only.
    """

    code = "ERR_NOT_FOUND"

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)


class TemplateNotFoundError(NotFoundError):
    """Template is missing, belongs to another tenant, or has been deactivated."""

    def __init__(self, template_id: str | None = None, tenant_id: int | None = None) -> None:
        super().__init__("ChecklistTemplate", template_id, tenant_id)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    The data was well-formed but violated a business rule. Maps to HTTP 422
    unless a subclass says otherwise.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    code = "ERR_VALIDATION_INVALID"
    http_status = 422

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class CrossTemplateDependencyError(ValidationError):
    """A depends_on reference does not resolve to an item of the same set."""

    code = "ERR_CROSS_TEMPLATE_DEPENDENCY"
    http_status = 400

    def __init__(self, item_key, depends_on_key) -> None:
        self.item_key = item_key
        self.depends_on_key = depends_on_key
        super().__init__(
            f"Item {item_key} depends on {depends_on_key}, which is not an item of this template",
            details={"item": str(item_key), "depends_on": str(depends_on_key)},
        )


class DependencyCycleError(ValidationError):
    """The depends_on pointers form a cycle (a self-reference is a one-item cycle)."""

    code = "ERR_DEPENDENCY_CYCLE"
    http_status = 400

    def __init__(self, cycle: list) -> None:
        self.cycle = cycle
        path = " -> ".join(str(k) for k in cycle)
        super().__init__(
            f"Dependency cycle detected: {path}",
            details={"cycle": [str(k) for k in cycle]},
        )


class DocumentRequiredError(ValidationError):
    """Item requires a document and none (or an unresolvable one) was supplied."""

    code = "ERR_DOCUMENT_REQUIRED"
    http_status = 400

    def __init__(self, item_id: str, document_ref: str | None = None) -> None:
        self.item_id = item_id
        self.document_ref = document_ref
        if document_ref:
            msg = f"Document {document_ref} could not be resolved for item {item_id}"
        else:
            msg = f"Item {item_id} requires a document reference to complete"
        super().__init__(msg, details={"item_id": item_id, "document_ref": document_ref})


class CannotSkipRequiredError(ValidationError):
    """Only optional items may be skipped."""

    code = "ERR_CANNOT_SKIP_REQUIRED"
    http_status = 400

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Item {item_id} is required and cannot be skipped")


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique constraint violation.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value (truncated in HTTP response; full in logs).
        message: Optional override for the default "already exists" message.
    """

    code = "ERR_CONFLICT_DUPLICATE"

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class DuplicateInstanceError(ConflictError):
    """An instance already exists for this (customer, template) pair."""

    def __init__(self, customer_id: str, template_id: str) -> None:
        self.customer_id = customer_id
        self.template_id = template_id
        super().__init__(
            "ChecklistInstance", "customer_id+template_id", f"{customer_id}+{template_id}",
        )


class ItemStateConflictError(ConflictError):
    """Base for item transitions refused because of the item's current state."""

    code = "ERR_CONFLICT_STATE"

    def __init__(self, item_id: str, status: str, message: str) -> None:
        self.item_id = item_id
        self.status = status
        super().__init__("ChecklistInstanceItem", "status", status, message=message)


class ItemBlockedError(ItemStateConflictError):
    """Completion attempted while the item's prerequisite is unsatisfied."""

    code = "ERR_ITEM_BLOCKED"

    def __init__(self, item_id: str) -> None:
        super().__init__(
            item_id, "BLOCKED",
            f"Item {item_id} is blocked — its prerequisite is not yet completed",
        )


class InvalidItemTransitionError(ItemStateConflictError):
    """The requested action is not allowed from the item's current status."""

    def __init__(self, item_id: str, status: str, action: str) -> None:
        self.action = action
        super().__init__(item_id, status, f"Cannot {action} item {item_id} in status {status}")


class InvalidLifecycleTransitionError(Exception):
    """The customer lifecycle state machine refused a transition.

    Surfaced as HTTP 409 when the transition was requested directly; logged
    and swallowed when requested automatically by checklist completion.
    """

    code = "ERR_CONFLICT_STATE"

    def __init__(self, customer_id: str, old_status: str, new_status: str, reason: str | None = None) -> None:
        self.customer_id = customer_id
        self.old_status = old_status
        self.new_status = new_status
        self.reason = reason
        msg = f"Invalid lifecycle transition: {old_status} → {new_status}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
