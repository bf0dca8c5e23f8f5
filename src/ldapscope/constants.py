"""Constants for ldapscope."""

__all__ = [
    "LDAP_TIMEOUT",
    "LOGGER_NAME",
    "MANAGE_DSA_IT_OID",
    "PAGED_RESULTS_OID",
    "PASSWORD_MODIFY_OID",
    "PASSWORD_POLICY_OID",
    "POOL_MAX_CONNECTIONS",
    "POOL_MIN_CONNECTIONS",
    "WHO_AM_I_OID",
]

LDAP_TIMEOUT = 5.0
"""Timeout (in seconds) for LDAP operations."""

LOGGER_NAME = "ldapscope"
"""Name of the logger used for all ldapscope messages."""

POOL_MIN_CONNECTIONS = 1
"""Default minimum number of connections kept in the connection pool."""

POOL_MAX_CONNECTIONS = 10
"""Default maximum number of connections in the connection pool."""

MANAGE_DSA_IT_OID = "2.16.840.1.113730.3.4.2"
"""OID of the ManageDsaIT control (:rfc:`3296`)."""

PAGED_RESULTS_OID = "1.2.840.113556.1.4.319"
"""OID of the simple paged results control (:rfc:`2696`)."""

PASSWORD_POLICY_OID = "1.3.6.1.4.1.42.2.27.8.5.1"
"""OID of the password policy request control."""

PASSWORD_MODIFY_OID = "1.3.6.1.4.1.4203.1.11.1"
"""OID of the Password Modify extended operation (:rfc:`3062`)."""

WHO_AM_I_OID = "1.3.6.1.4.1.4203.1.11.3"
"""OID of the Who Am I extended operation (:rfc:`4532`)."""
