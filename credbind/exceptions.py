"""Custom exception hierarchy for credbind.

This module defines a structured exception hierarchy that enables precise
error handling and user-friendly error messages throughout the binding
system. Messages never carry secret values, only credential ids and
variable names.

Exception Hierarchy:
    CredbindError (base)
    ├── ConfigurationError
    │   ├── DuplicateVariableError
    │   └── WorkspaceRequiredError
    ├── CredentialError
    │   ├── BackendNotAvailableError
    │   └── BindingError
    │       ├── CredentialNotFoundError
    │       ├── AccessDeniedError
    │       ├── CapabilityMismatchError
    │       ├── IncompleteCredentialError
    │       ├── TransformFailureError
    │       ├── BindingNotFoundError
    │       └── BindTimeoutError
    └── UsageTrackingError

Example Usage:
    >>> from credbind.exceptions import BindingError
    >>> try:
    ...     binding_set = await binder.bind(scope, bindings)
    ... except BindingError as e:
    ...     print(f"Cannot bind {e.variable}: {e.message}")
"""


class CredbindError(Exception):
    """Base exception for all credbind errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(CredbindError):
    """Configuration-related errors.

    Raised when binding declarations or settings files are invalid.

    Examples:
        - Configuration file not found
        - Invalid YAML syntax
        - Binding type registered twice
    """

    pass


class DuplicateVariableError(ConfigurationError):
    """The same variable name is bound more than once in one scope.

    Attributes:
        variable: The duplicated variable name
    """

    def __init__(self, variable: str) -> None:
        self.variable = variable
        super().__init__(f"Variable bound more than once in this scope: {variable}")


class WorkspaceRequiredError(ConfigurationError):
    """A binding type needs a workspace but the scope has none."""

    def __init__(self, variable: str, binding_type: str) -> None:
        self.variable = variable
        self.binding_type = binding_type
        super().__init__(
            f"Binding type '{binding_type}' requires a workspace (variable: {variable})"
        )


class CredentialError(CredbindError):
    """Credential-related errors.

    Raised when credentials cannot be looked up, resolved, or exposed.

    Attributes:
        message: Human-readable error description
        reference: The credential id that failed
        suggestion: Optional suggestion for resolution
    """

    def __init__(
        self,
        message: str,
        reference: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            reference: The credential id that failed
            suggestion: Optional suggestion for resolution
        """
        self.reference = reference
        self.suggestion = suggestion

        super().__init__(self._format(message))
        # Preserve original message (super sets self.message to the full text)
        self.message = message

    def _format(self, message: str) -> str:
        full_message = message
        if self.reference:
            full_message = f"{message} (credential: {self.reference})"
        if self.suggestion:
            full_message = f"{full_message}\nSuggestion: {self.suggestion}"
        return full_message


class BackendNotAvailableError(CredentialError):
    """Requested credential store is not available on this system."""

    pass


class BindingError(CredentialError):
    """Resolving one binding of a scope failed.

    Every binding failure is fatal to the whole bind step. The binder
    attaches the offending variable name before re-raising.

    Attributes:
        variable: Variable whose binding failed (None until attached)
    """

    def __init__(
        self,
        message: str,
        reference: str | None = None,
        suggestion: str | None = None,
        variable: str | None = None,
    ) -> None:
        self.variable = variable
        super().__init__(message, reference=reference, suggestion=suggestion)

    def _format(self, message: str) -> str:
        full_message = super()._format(message)
        if self.variable:
            full_message = f"[{self.variable}] {full_message}"
        return full_message

    def for_variable(self, variable: str) -> "BindingError":
        """Attach the offending variable name and refresh the message."""
        self.variable = variable
        self.args = (self._format(self.message),)
        return self


class CredentialNotFoundError(BindingError):
    """Credential id cannot be resolved by the store."""

    pass


class AccessDeniedError(BindingError):
    """The consumer is not allowed to use the credential."""

    pass


class CapabilityMismatchError(BindingError):
    """Credential type is wrong for the binding type."""

    pass


class IncompleteCredentialError(BindingError):
    """Credential lacks a field the transform requires."""

    pass


class TransformFailureError(BindingError):
    """Transform-specific encoding error."""

    pass


class BindingNotFoundError(BindingError):
    """No transform is registered for the binding type."""

    pass


class BindTimeoutError(BindingError):
    """Binding did not complete within the scope's timeout."""

    pass


class UsageTrackingError(CredbindError):
    """Writing a usage record failed.

    Never fatal to a scope; the tracker logs it as a warning.
    """

    pass
