"""Billing-domain errors raised by the entitlement calculators and services."""

from core.exceptions.base import ConflictException, ValidationException


class InvalidDateFormat(ValidationException):
    """A user-supplied date is not a YYYY-MM-DD day key."""

    error_code = "INVALID_DATE_FORMAT"
    message = "Dates must use the YYYY-MM-DD format"


class InvalidEntitlement(ValidationException):
    """An entitlement session count was zero or negative."""

    error_code = "INVALID_ENTITLEMENT"
    message = "Entitlement sessions must be greater than zero"


class InvalidBlockLength(ValidationException):
    """A custom block length was rejected for the enrolment's plan."""

    error_code = "INVALID_BLOCK_LENGTH"
    message = "Invalid custom block length"


class AwayPeriodOverlap(ConflictException):
    """The away window overlaps another live away period for the family."""

    error_code = "AWAY_PERIOD_OVERLAP"
    message = "Away period overlaps an existing away period"
