"""Custom exception hierarchy for the infra-deploy system.

Exception Hierarchy:
    InfraDeployError (base)
    ├── ConfigurationError
    ├── CatalogError
    │   ├── MalformedCatalogError
    │   └── CompilationFailureError
    ├── ExternalServiceError
    └── TransportError
        ├── TransportTimeoutError
        └── NodeEnforcementFailure

Only catalog-level errors (and configuration/service errors raised before a
run starts) abort a command. Transport errors are raised inside a node's
enforcement callback and are contained by the scheduler, which records them
as a failure of that single node.

Example Usage:
    >>> from infra_deploy.exceptions import CompilationFailureError
    >>> if "applications" not in document:
    ...     raise CompilationFailureError(document.get("message", "unknown error"))
"""


class InfraDeployError(Exception):
    """Base exception for all infra-deploy errors.

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


class ConfigurationError(InfraDeployError):
    """Configuration-related errors.

    Examples:
        - Configuration file not found
        - Invalid YAML syntax
        - Unreadable or malformed hostname mapping file
    """

    pass


class CatalogError(InfraDeployError):
    """Base class for errors in the environment catalog.

    Attributes:
        environment: Environment the catalog was compiled for, when known
    """

    def __init__(self, message: str, environment: str | None = None) -> None:
        """Initialize exception.

        Args:
            message: Error message
            environment: Name of the environment
        """
        self.environment = environment
        full_message = message
        if environment:
            full_message = f"{message} (environment: {environment})"
        super().__init__(full_message)
        self.message = message


class MalformedCatalogError(CatalogError):
    """Catalog document is structurally invalid.

    Examples:
        - Document is not a JSON object
        - A component has no node assigned
        - produces/consumes is not a list of strings
    """

    pass


class CompilationFailureError(CatalogError):
    """The catalog service answered with an error payload instead of applications.

    The message carried by the payload is surfaced verbatim.
    """

    pass


class ExternalServiceError(InfraDeployError):
    """External service communication errors.

    Raised when the catalog service cannot be reached or answers with a
    non-success HTTP status.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            status_code: HTTP status code (if applicable)
            response_text: Response body text (if applicable)
        """
        self.message = message
        self.status_code = status_code
        self.response_text = response_text

        full_message = message
        if status_code:
            full_message = f"{message} (HTTP {status_code})"

        super().__init__(full_message)


class TransportError(InfraDeployError):
    """Enforcement transport failed to talk to a node.

    Attributes:
        node: Certname of the node being enforced
    """

    def __init__(self, message: str, node: str | None = None) -> None:
        """Initialize exception.

        Args:
            message: Error message
            node: Certname of the node
        """
        self.node = node
        full_message = f"{message} (node: {node})" if node else message
        super().__init__(full_message)
        self.message = message


class TransportTimeoutError(TransportError):
    """Timed out waiting for a remote Puppet run to settle.

    Attributes:
        timeout_seconds: The timeout duration that was exceeded
    """

    def __init__(
        self,
        message: str,
        node: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            node: Certname of the node
            timeout_seconds: The timeout that was exceeded
        """
        self.timeout_seconds = timeout_seconds
        if timeout_seconds and "timeout" not in message.lower():
            message = f"{message} (timeout: {timeout_seconds}s)"
        super().__init__(message, node=node)


class NodeEnforcementFailure(TransportError):
    """A node's enforcement returned failure or raised.

    Never propagated past the scheduler; kept on the node's outcome so the
    report can show what went wrong.
    """

    pass
