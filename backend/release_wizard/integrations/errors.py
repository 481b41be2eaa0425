# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Adapter error taxonomy.

Every failure of an outbound call surfaces as an AdapterError; raw httpx
exceptions never reach the engine. The kind drives the retry policy.
"""

from enum import Enum
from typing import Optional, Dict, Any

from release_wizard.core.errors import RWizardError


class AdapterErrorKind(str, Enum):
    TRANSIENT = "TRANSIENT"    # network, 5xx, rate limited
    PERMANENT = "PERMANENT"    # auth, validation, other 4xx
    UNKNOWN = "UNKNOWN"        # undecodable response

    @property
    def is_retryable(self) -> bool:
        return self != AdapterErrorKind.PERMANENT


class AdapterError(RWizardError):
    """Failure of a call to an external system"""

    def __init__(
        self,
        kind: AdapterErrorKind,
        system: str,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.kind = kind
        self.system = system
        self.http_status = status_code
        super().__init__(
            f"{system}: {message}",
            status_code=502,
            details={
                "kind": kind.value,
                "system": system,
                "http_status": status_code,
                **(details or {})
            }
        )

    @property
    def is_retryable(self) -> bool:
        return self.kind.is_retryable

    @classmethod
    def transient(cls, system: str, message: str, status_code: Optional[int] = None) -> "AdapterError":
        return cls(AdapterErrorKind.TRANSIENT, system, message, status_code)

    @classmethod
    def permanent(cls, system: str, message: str, status_code: Optional[int] = None) -> "AdapterError":
        return cls(AdapterErrorKind.PERMANENT, system, message, status_code)

    @classmethod
    def unknown(cls, system: str, message: str, status_code: Optional[int] = None) -> "AdapterError":
        return cls(AdapterErrorKind.UNKNOWN, system, message, status_code)
