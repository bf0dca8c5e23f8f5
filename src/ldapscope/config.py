"""Configuration for ldapscope.

Configuration is normally read from a YAML file with camel-case keys.
Settings that carry secrets or vary per deployment (the server URL, bind DN
and bind password) may also be set with environment variables, which take
precedence over the file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Self, override

import yaml
from pydantic import (
    AliasChoices,
    Field,
    SecretStr,
    UrlConstraints,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import Url
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)
from safir.logging import LogLevel, configure_logging

from .constants import (
    LDAP_TIMEOUT,
    LOGGER_NAME,
    POOL_MAX_CONNECTIONS,
    POOL_MIN_CONNECTIONS,
)
from .models.ldap import ReferralMode
from .sockets import TLSSocketFactory

LdapDsn = Annotated[
    Url, UrlConstraints(allowed_schemes=["ldap", "ldaps"], host_required=True)
]
"""DSN for connecting to an LDAP server."""

__all__ = [
    "Config",
    "LdapDsn",
]


class Config(BaseSettings):
    """Configuration for pooled LDAP contexts."""

    model_config = SettingsConfigDict(
        alias_generator=to_camel, extra="forbid", populate_by_name=True
    )

    url: LdapDsn = Field(
        ...,
        title="LDAP server URL",
        description="URL of the LDAP server, using ldap or ldaps",
        validation_alias=AliasChoices("LDAPSCOPE_URL", "url"),
    )

    user_dn: str | None = Field(
        None,
        title="Simple bind DN",
        description=(
            "DN of user to bind as with simple bind. If not set, connections"
            " are bound anonymously."
        ),
        validation_alias=AliasChoices("LDAPSCOPE_USER_DN", "userDn"),
    )

    password: SecretStr | None = Field(
        None,
        title="Simple bind password",
        description="Password for simple bind. Only used if userDn is set.",
        validation_alias=AliasChoices("LDAPSCOPE_PASSWORD", "password"),
    )

    base_dn: str = Field(
        "",
        title="Base DN",
        description="DN that names passed to contexts are relative to",
    )

    use_starttls: bool = Field(
        False,
        title="Whether to use STARTTLS",
        description=(
            "If set to true, upgrade ldap connections to TLS with STARTTLS."
            " Not needed for ldaps URLs."
        ),
    )

    ca_file: Path | None = Field(
        None,
        title="CA certificate file",
        description="File of PEM-encoded CA certificates to trust",
    )

    ca_dir: Path | None = Field(
        None,
        title="CA certificate directory",
        description="Directory of hashed CA certificates to trust",
    )

    cert_file: Path | None = Field(
        None,
        title="Client certificate",
        description="PEM-encoded client certificate for TLS authentication",
    )

    key_file: Path | None = Field(
        None,
        title="Client key",
        description="PEM-encoded private key for the client certificate",
    )

    verify_certificates: bool = Field(
        True,
        title="Whether to verify server certificates",
        description=(
            "Disabling verification is only appropriate for testing against"
            " servers with self-signed certificates."
        ),
    )

    referral: ReferralMode = Field(
        ReferralMode.IGNORE,
        title="Referral handling",
        description=(
            "Whether to follow referrals, ignore them, or raise an exception"
            " so that the caller can follow them"
        ),
    )

    timeout: float = Field(
        LDAP_TIMEOUT,
        title="Operation timeout",
        description="Timeout for each LDAP operation in seconds",
        gt=0,
    )

    page_size: int | None = Field(
        None,
        title="Default search page size",
        description=(
            "If set, searches retrieve results in pages of this size unless"
            " the search requests a different size"
        ),
        gt=0,
    )

    pool_min_connections: int = Field(
        POOL_MIN_CONNECTIONS,
        title="Minimum pool size",
        description="Number of connections the pool opens up front",
        ge=0,
    )

    pool_max_connections: int = Field(
        POOL_MAX_CONNECTIONS,
        title="Maximum pool size",
        description="Maximum number of connections the pool opens",
        gt=0,
    )

    log_level: LogLevel = Field(
        LogLevel.INFO,
        title="Logging level",
        description="Python logging level",
    )

    @override
    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Let environment variables override the configuration file."""
        return (env_settings, init_settings)

    @model_validator(mode="after")
    def _validate_password(self) -> Self:
        if self.user_dn and not self.password:
            raise ValueError("password required if userDn is set")
        return self

    @model_validator(mode="after")
    def _validate_client_key(self) -> Self:
        if self.key_file and not self.cert_file:
            raise ValueError("certFile required if keyFile is set")
        return self

    @model_validator(mode="after")
    def _validate_pool_size(self) -> Self:
        if self.pool_min_connections > self.pool_max_connections:
            msg = "poolMinConnections cannot exceed poolMaxConnections"
            raise ValueError(msg)
        return self

    @classmethod
    def from_file(cls, path: Path) -> Self:
        """Construct a Config object from a configuration file.

        Parameters
        ----------
        path
            Path to the configuration file in YAML.

        Returns
        -------
        Config
            The corresponding `Config` object.
        """
        with path.open("r") as f:
            return cls(**yaml.safe_load(f))

    def configure_logging(self) -> None:
        """Configure logging based on the configuration."""
        configure_logging(name=LOGGER_NAME, log_level=self.log_level)

    def socket_factory(self) -> TLSSocketFactory:
        """Build the socket factory for connections from the TLS settings."""
        return TLSSocketFactory(
            ca_file=self.ca_file,
            ca_dir=self.ca_dir,
            cert_file=self.cert_file,
            key_file=self.key_file,
            verify=self.verify_certificates,
        )
