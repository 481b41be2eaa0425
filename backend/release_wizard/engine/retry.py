# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Block retry policy.
"""

from dataclasses import dataclass

from release_wizard.core.config import Config


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff between attempts of one block execution"""
    base_delay: float = 5.0
    max_delay: float = 300.0
    backoff_multiplier: float = 2.0

    @classmethod
    def from_config(cls, config: Config) -> "RetryPolicy":
        return cls(base_delay=config.retry_base_delay, max_delay=config.retry_max_delay)

    def should_retry(self, retry_count: int, max_retries: int) -> bool:
        """retry_count has already been incremented for the failed attempt"""
        return retry_count < max_retries

    def delay_for(self, retry_count: int) -> float:
        """Delay before the attempt following the retry_count-th failure"""
        exponent = max(retry_count - 1, 0)
        return min(self.max_delay, self.base_delay * (self.backoff_multiplier ** exponent))
