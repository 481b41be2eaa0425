# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Release storage backends.
"""

from .base import ReleaseStore, ACTIVE_STATUSES
from .memory import InMemoryReleaseStore
from .file import FileReleaseStore

__all__ = ["ReleaseStore", "ACTIVE_STATUSES", "InMemoryReleaseStore", "FileReleaseStore"]
