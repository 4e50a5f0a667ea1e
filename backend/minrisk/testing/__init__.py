"""
Shared test utilities and factories.

Re-exports all factory functions for convenient imports:
    from minrisk.testing import create_organization, create_user_profile, get_auth_headers
"""

from minrisk.testing.factories import (
    DEFAULT_PASSWORD,
    act_as,
    create_incident,
    create_invitation,
    create_kri,
    create_organization,
    create_risk,
    create_user_profile,
    get_auth_headers,
    get_auth_token,
)

__all__ = [
    "DEFAULT_PASSWORD",
    "act_as",
    "create_incident",
    "create_invitation",
    "create_kri",
    "create_organization",
    "create_risk",
    "create_user_profile",
    "get_auth_headers",
    "get_auth_token",
]
