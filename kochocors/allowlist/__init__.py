"""KochoCORS target-domain allowlist.

Public API:
    is_domain_allowed    — suffix-match a hostname against configured patterns
    check_domain_allowed — pipeline stage raising DomainForbidden
"""
from kochocors.allowlist.matcher import check_domain_allowed, is_domain_allowed, match_domain

__all__ = ["check_domain_allowed", "is_domain_allowed", "match_domain"]
