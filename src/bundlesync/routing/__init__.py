"""
Request routing between the network and the persistent store.
"""

from .policy import POLICIES, FetchPolicyRouter, network_error_response, tag_cache_hit

__all__ = ["POLICIES", "FetchPolicyRouter", "network_error_response", "tag_cache_hit"]
