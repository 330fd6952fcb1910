from core.exceptions.base import (
    CustomException,
    BadRequestException,
    UnauthorizedException,
    ForbiddenException,
    NotFoundException,
    ConflictException,
    ValidationException,
)
from core.exceptions.billing import (
    AwayPeriodOverlap,
    InvalidBlockLength,
    InvalidDateFormat,
    InvalidEntitlement,
)

__all__ = [
    "CustomException",
    "BadRequestException",
    "UnauthorizedException",
    "ForbiddenException",
    "NotFoundException",
    "ConflictException",
    "ValidationException",
    "AwayPeriodOverlap",
    "InvalidBlockLength",
    "InvalidDateFormat",
    "InvalidEntitlement",
]
