# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Service layer for Release Wizard.
"""

from .project_service import ProjectService
from .release_service import ReleaseService

__all__ = ["ProjectService", "ReleaseService"]
