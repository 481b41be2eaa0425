# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Test Suite for Release Wizard

Structure:
- builders.py: small factories for blocks, graphs, projects and config
- test_*.py: one module per package (graph, integrations, executors,
  engine, events, storage, services, config)
"""
