"""
Base errors for use cases.

Each module subclasses these (TemplateValidationError, InstanceNotFoundError, ...)
so routes can map validation -> 400 and not-found -> 404.
"""


class LedgerValidationError(ValueError):
    """Input rejected by a use case"""
    pass


class NotFoundError(LookupError):
    """Referenced template / instance / payment / fund does not exist"""
    pass
