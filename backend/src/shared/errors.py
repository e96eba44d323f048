"""
Business-rule exceptions.
Each error maps to the HTTP status code returned by the request boundary.
"""


class MarketplaceError(Exception):
    """Base class for errors that are safe to show to the caller."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MarketplaceError):
    """Malformed or missing field, invalid enum value."""
    status_code = 400


class InvalidTransition(MarketplaceError):
    """Status change not in the allowed transition table."""
    status_code = 400

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(f"Cannot change {entity} status from {current} to {target}")
        self.entity = entity
        self.current = current
        self.target = target


class ImmutableState(MarketplaceError):
    """Mutation attempted on a terminal or locked record."""
    status_code = 400


class DuplicateBid(MarketplaceError):
    status_code = 400

    def __init__(self, message: str = 'You have already submitted a bid for this job'):
        super().__init__(message)


class DuplicateReview(MarketplaceError):
    status_code = 400

    def __init__(self, message: str = 'Review already exists for this contract'):
        super().__init__(message)


class Unauthorized(MarketplaceError):
    status_code = 401

    def __init__(self, message: str = 'Not authorized, no token'):
        super().__init__(message)


class Forbidden(MarketplaceError):
    status_code = 403

    def __init__(self, message: str = 'Access denied'):
        super().__init__(message)


class NotFound(MarketplaceError):
    status_code = 404


class Conflict(MarketplaceError):
    """A conditional write lost a race; the caller may retry."""
    status_code = 409
