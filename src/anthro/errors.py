"""Exception types raised by the anthro package."""


class AnthroError(Exception):
    """Base class for all anthro errors."""


class InputValidationError(AnthroError, ValueError):
    """
    A measurement request violates an input constraint.

    Raised at construction time for a bad measurement type, sex, age form,
    age range, measurement-specific age window or non-positive value.
    The caller can always fix the request and try again.
    """


class ReferenceDataError(AnthroError, RuntimeError):
    """
    The reference dataset is malformed or does not cover a validated age.

    Signals a defect in the bundled LMS tables rather than a user mistake.
    """
