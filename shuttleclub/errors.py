"""
Domain exceptions for the club services.

Services and the auth decorators raise these before touching the database;
the app-level error handler renders them as ``{"error": message}`` with ``status_code``.
"""


class ClubError(Exception):
    """Base exception for club service errors."""
    status_code = 400
    default_message = 'Request could not be completed'

    def __init__(self, message=None, **extra):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.extra = extra

    def to_dict(self):
        payload = {'error': self.message}
        payload.update(self.extra)
        return payload


class ValidationError(ClubError):
    """Raised when input is missing or malformed."""
    status_code = 400
    default_message = 'Invalid request'


class CapacityError(ValidationError):
    """Raised when a registration would overfill a session."""
    default_message = 'Session is full'


class CutoffError(ValidationError):
    """Raised when joining or leaving too close to the session start."""
    default_message = 'Registration is closed for this session'


class AuthenticationError(ClubError):
    status_code = 401
    default_message = 'Authentication required'


class AuthorizationError(ClubError):
    status_code = 403
    default_message = 'You do not have permission to perform this action'


class NotFoundError(ClubError):
    status_code = 404
    default_message = 'Not found'


class ConflictError(ClubError):
    status_code = 409
    default_message = 'Conflicting request'


class InvalidStateTransitionError(ConflictError):
    """Raised when a payment request is no longer pending."""
    default_message = 'Payment request has already been processed'


class PaymentGatewayError(ClubError):
    """Raised when the payment gateway cannot be reached or answers badly."""
    status_code = 502
    default_message = 'Payment gateway error'
    retryable = True


class AmountMismatchError(PaymentGatewayError):
    """Raised when the gateway reports a different amount than was ordered."""
    status_code = 400
    default_message = 'Payment amount verification failed'
    retryable = False
