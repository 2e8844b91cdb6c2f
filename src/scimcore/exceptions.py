from typing import List, Optional, Sequence
from scimcore.schemas.error import ErrorResponse


class SCIMException(Exception):
    status_code: int = 400
    scim_type: Optional[str] = None
    retryable: bool = False

    def __init__(
        self,
        detail: str,
        status_code: Optional[int] = None,
        scim_type: Optional[str] = None,
    ):
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code
        if scim_type is not None:
            self.scim_type = scim_type
        super().__init__(detail)

    @property
    def errors(self) -> List["SCIMException"]:
        return [self]

    def to_error_response(self) -> ErrorResponse:
        return ErrorResponse(
            status=self.status_code,
            detail=self.detail,
            scim_type=self.scim_type
        )


class UnknownResourceType(SCIMException):
    status_code = 404

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown resource type '{name}'")


class UnknownAttribute(SCIMException):
    scim_type = "invalidSyntax"

    def __init__(self, path: str, scim_type: Optional[str] = None):
        self.path = path
        super().__init__(f"Unknown attribute '{path}'", scim_type=scim_type)


class TypeMismatch(SCIMException):
    scim_type = "invalidValue"

    def __init__(self, path: str, expected: str, value=None):
        self.path = path
        self.expected = expected
        super().__init__(f"Attribute '{path}' expects a value of type '{expected}', got {type(value).__name__}")


class MultiplicityMismatch(SCIMException):
    scim_type = "invalidValue"

    def __init__(self, path: str, multi_valued: bool):
        self.path = path
        expected = "a list of values" if multi_valued else "a single value"
        super().__init__(f"Attribute '{path}' expects {expected}")


class RequiredAttributeMissing(SCIMException):
    scim_type = "invalidValue"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Required attribute '{path}' is missing")


class ImmutableAttributeModified(SCIMException):
    scim_type = "mutability"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Attribute '{path}' cannot be modified")


class MultiplePrimaryValues(SCIMException):
    scim_type = "invalidValue"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Only one value of '{path}' can be marked as primary")


class UniquenessConflict(SCIMException):
    status_code = 409
    scim_type = "uniqueness"

    def __init__(self, path: str, value):
        self.path = path
        self.value = value
        super().__init__(f"A resource with {path} '{value}' already exists")


class MalformedPath(SCIMException):
    scim_type = "invalidPath"

    def __init__(self, path: Optional[str], reason: str):
        self.path = path
        super().__init__(f"Invalid path '{path}': {reason}")


class PathRequired(SCIMException):
    scim_type = "noTarget"

    def __init__(self, op: str):
        self.op = op
        super().__init__(f"'path' is required for '{op}' operations")


class UnsupportedOperation(SCIMException):
    scim_type = "invalidSyntax"

    def __init__(self, op):
        self.op = op
        super().__init__(f"Unsupported patch operation '{op}'")


class NoTargetMatched(SCIMException):
    scim_type = "noTarget"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"No values matched path '{path}'")


class TargetAlreadyExists(SCIMException):
    scim_type = "invalidValue"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"'add' cannot target existing values; '{path}' matched at least one element")


class MalformedFilter(SCIMException):
    scim_type = "invalidFilter"

    def __init__(self, filter_expression: str, reason: str):
        self.filter_expression = filter_expression
        super().__init__(f"Invalid filter expression '{filter_expression}': {reason}")


class InvalidSyntax(SCIMException):
    scim_type = "invalidSyntax"


class NotFound(SCIMException):
    status_code = 404

    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} with id '{resource_id}' not found")


class VersionConflict(SCIMException):
    status_code = 412

    def __init__(self, resource_id: str, expected: Optional[str] = None, actual: Optional[str] = None):
        self.resource_id = resource_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"Resource '{resource_id}' version mismatch (expected {expected}, current {actual})")


class StorageUnavailable(SCIMException):
    status_code = 503
    retryable = True

    def __init__(self, detail: str = "Resource storage is unavailable"):
        super().__init__(detail)


class ValidationErrors(SCIMException):
    """Several constraint violations reported as one error."""

    def __init__(self, errors: Sequence[SCIMException]):
        self._errors = [inner for e in errors for inner in e.errors]
        if all(isinstance(e, UniquenessConflict) for e in self._errors):
            status_code, scim_type = 409, "uniqueness"
        else:
            status_code = 400
            kinds = {e.scim_type for e in self._errors if e.status_code == 400}
            scim_type = kinds.pop() if len(kinds) == 1 else "invalidValue"
        super().__init__(
            "; ".join(e.detail for e in self._errors),
            status_code=status_code,
            scim_type=scim_type,
        )

    @property
    def errors(self) -> List[SCIMException]:
        return list(self._errors)


def raise_for_errors(errors: Sequence[SCIMException]) -> None:
    if not errors:
        return
    if len(errors) == 1:
        raise errors[0]
    raise ValidationErrors(errors)


# Configuration-time errors, raised while the registry is being assembled


class DuplicateSchemaID(ValueError):
    def __init__(self, schema_id: str):
        self.schema_id = schema_id
        super().__init__(f"Schema '{schema_id}' is already registered")


class DuplicateResourceType(ValueError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Resource type '{name}' is already registered")
