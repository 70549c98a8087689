"""Error taxonomy shared by connectors, processors and the gateway."""


class IntegrationError(Exception):
    """Base integration error."""
    category = "internal"


class ConfigurationError(IntegrationError):
    """Integration or webhook is missing required configuration."""
    category = "config"


class NetworkError(IntegrationError):
    """Outbound call timed out or could not connect."""
    category = "network"


class AuthenticationError(IntegrationError):
    """Authentication failed."""
    category = "auth"


class CredentialError(AuthenticationError):
    """Stored credentials could not be decrypted."""
    pass


class ParseError(IntegrationError):
    """Remote payload could not be parsed."""
    category = "parse"


class RateLimitError(IntegrationError):
    """Rate limit exceeded."""
    category = "rate_limit"


class WebhookVerificationError(AuthenticationError):
    """Webhook signature verification failed."""
    pass


def error_category(error: BaseException) -> str:
    """Category label recorded for an error in activity logs."""
    return getattr(error, "category", "internal")
