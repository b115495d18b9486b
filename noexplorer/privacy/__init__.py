"""
Privacy helpers: traffic obfuscation, user agent rotation, DNS-over-HTTPS.
"""

from noexplorer.privacy.dns import DOH_PROVIDERS, DoHResolver
from noexplorer.privacy.obfuscation import (
    DecoyQueryScheduler,
    DelayDistribution,
    DelayOptions,
    TrafficObfuscator,
    distribution_for_level,
)
from noexplorer.privacy.user_agents import UserAgentRotator

__all__ = [
    "DOH_PROVIDERS",
    "DecoyQueryScheduler",
    "DelayDistribution",
    "DelayOptions",
    "DoHResolver",
    "TrafficObfuscator",
    "UserAgentRotator",
    "distribution_for_level",
]
