"""
Error taxonomy shared by services and routers.

Every error carries the HTTP status it maps to at the API boundary, where the
exception handler in main.py turns it into an ``{"error": message}`` body.
"""


class GardenGridError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GardenGridError):
    """Bad or missing input field."""
    status_code = 400


class InvalidPriceError(GardenGridError):
    """Price identifier not in the checkout allow-list."""
    status_code = 400


class SignatureInvalidError(GardenGridError):
    """Webhook authenticity check failed or could not be attempted."""
    status_code = 400


class AuthenticationError(GardenGridError):
    status_code = 401


class NotFoundError(GardenGridError):
    status_code = 404


class GatewayError(GardenGridError):
    """The payment provider call failed."""
    status_code = 500


class ConfigurationError(GardenGridError):
    """A required secret or environment value is absent."""
    status_code = 500
