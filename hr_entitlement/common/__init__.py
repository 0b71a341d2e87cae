"""Common module — shared utilities for the entitlement engine."""

from hr_entitlement.common.constants import (
    AllocationType,
    BalanceSource,
    InLieuStatus,
    IssueSeverity,
    LeaveStatus,
    UserRole,
)
from hr_entitlement.common.exceptions import (
    AppException,
    ForbiddenException,
    NotFoundException,
    UnauthorizedException,
    register_exception_handlers,
)
from hr_entitlement.common.logging import get_logger, request_id_var, setup_logging

__all__ = [
    # Constants / Enums
    "AllocationType",
    "BalanceSource",
    "InLieuStatus",
    "IssueSeverity",
    "LeaveStatus",
    "UserRole",
    # Exceptions
    "AppException",
    "ForbiddenException",
    "NotFoundException",
    "UnauthorizedException",
    "register_exception_handlers",
    # Logging
    "get_logger",
    "request_id_var",
    "setup_logging",
]
