"""Custom exceptions for testnet cluster deployment."""


class ValidatorClusterError(Exception):
    """Base exception for all validator cluster errors."""

    def __init__(self, message: str, details: str | None = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details, captured output or suggestions
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message.

        Returns:
            Formatted error message with details
        """
        if self.details:
            return f"{self.message}\n\nDetails: {self.details}"
        return self.message


class ExternalProcessError(ValidatorClusterError):
    """Exception raised when solana-keygen or solana-genesis fails."""

    pass


class InvalidArgumentError(ValidatorClusterError):
    """Exception raised for unknown validator types or bad account counts."""

    pass


class ClusterApiError(ValidatorClusterError):
    """Exception raised for Kubernetes API errors."""

    def __init__(self, message: str, details: str | None = None, status: int | None = None):
        self.status = status
        super().__init__(message, details)


class PreconditionError(ValidatorClusterError):
    """Exception raised when the cluster is not in a deployable state."""

    pass


class NamespaceNotFoundError(PreconditionError):
    """Exception raised when the target namespace does not exist."""

    pass


class ReadinessTimeoutError(ValidatorClusterError):
    """Exception raised when a replica set does not become ready in time."""

    pass


class ConfigurationError(ValidatorClusterError):
    """Exception raised for configuration errors."""

    pass
