# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Real-time update fan-out.
"""

from .bus import EventBus

__all__ = ["EventBus"]
