# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Release Wizard

Executes project block graphs against Slack, TeamCity, GitHub and Maven
Central, tracking status, logs, retries and human approvals.
"""

__version__ = "1.0.0"
