# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Core utilities and shared modules for Release Wizard.

This package contains:
- config: Configuration management
- dependencies: Component wiring
- errors: Custom exceptions
- logging: Structured logging
"""

from release_wizard.core.config import get_config, Config
from release_wizard.core.errors import RWizardError, NotFoundError, ValidationError
from release_wizard.core.logging import get_logger

__all__ = [
    "get_config",
    "Config",
    "RWizardError",
    "NotFoundError",
    "ValidationError",
    "get_logger",
]
