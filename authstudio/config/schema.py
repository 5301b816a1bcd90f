"""Normalized authentication configuration models using Pydantic.

Every section carries a default so consumers can read any field without
checking whether the host project configured it. Models serialize with the
camelCase names used by the host configuration (``model_dump(by_alias=True)``)
and accept either camelCase or snake_case input.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Section(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )


class DatabaseConfig(_Section):
    """Description of the host project's persistence layer."""

    type: str = Field("unknown", description="Database family, e.g. sqlite or postgresql")
    dialect: Optional[str] = Field(None, description="SQL dialect when known")
    adapter: str = Field("unknown", description="Adapter integration name")
    provider: Optional[str] = Field(None, description="Provider passed to the adapter")
    casing: str = Field("camel", description="Column naming convention")
    debug_logs: bool = Field(False, description="Adapter debug logging")
    url: Optional[str] = Field(None, description="Connection string or file path")
    name: Optional[str] = Field(None, description="Database name when known")


class EmailAndPasswordConfig(_Section):
    enabled: bool = False
    disable_sign_up: bool = False
    require_email_verification: bool = False
    max_password_length: int = 128
    min_password_length: int = 8
    reset_password_token_expires_in: int = Field(3600, description="Seconds")
    auto_sign_in: bool = True
    revoke_sessions_on_password_reset: bool = False


class EmailVerificationConfig(_Section):
    send_on_sign_up: bool = False
    send_on_sign_in: bool = False
    auto_sign_in_after_verification: bool = False
    expires_in: int = Field(3600, description="Seconds")


class ToggleConfig(_Section):
    enabled: bool = False


class DeleteUserConfig(_Section):
    enabled: bool = False
    delete_token_expires_in: int = Field(86400, description="Seconds")


class UserConfig(_Section):
    model_name: str = "user"
    change_email: ToggleConfig = Field(default_factory=ToggleConfig)
    delete_user: DeleteUserConfig = Field(default_factory=DeleteUserConfig)


class CookieCacheConfig(_Section):
    enabled: bool = False
    max_age: int = Field(300, description="Seconds")


class SessionConfig(_Section):
    model_name: str = "session"
    expires_in: int = Field(604800, description="Seconds")
    update_age: int = Field(86400, description="Seconds")
    disable_session_refresh: bool = False
    store_session_in_database: bool = False
    preserve_session_in_database: bool = False
    cookie_cache: CookieCacheConfig = Field(default_factory=CookieCacheConfig)
    fresh_age: int = Field(86400, description="Seconds")


class AccountLinkingConfig(_Section):
    enabled: bool = True
    trusted_providers: List[str] = Field(default_factory=list)
    allow_different_emails: bool = False
    allow_unlinking_all: bool = False
    update_user_info_on_link: bool = False


class AccountConfig(_Section):
    model_name: str = "account"
    update_account_on_sign_in: bool = True
    account_linking: AccountLinkingConfig = Field(default_factory=AccountLinkingConfig)
    encrypt_o_auth_tokens: bool = Field(False, alias="encryptOAuthTokens")


class VerificationConfig(_Section):
    model_name: str = "verification"
    disable_cleanup: bool = False


class RateLimitConfig(_Section):
    enabled: bool = False
    window: int = Field(10, description="Seconds")
    max: int = Field(100, description="Requests per window")
    storage: str = "memory"
    model_name: str = "rateLimit"


class IpAddressConfig(_Section):
    ip_address_headers: List[str] = Field(default_factory=list)
    disable_ip_tracking: bool = False


class CrossSubDomainCookiesConfig(_Section):
    enabled: bool = False
    additional_cookies: List[str] = Field(default_factory=list)
    domain: Optional[str] = None


class AdvancedDatabaseConfig(_Section):
    default_find_many_limit: int = 100
    use_number_id: bool = False


class AdvancedConfig(_Section):
    ip_address: IpAddressConfig = Field(default_factory=IpAddressConfig)
    use_secure_cookies: bool = False
    disable_csrf_check: bool = Field(False, alias="disableCSRFCheck")
    cross_sub_domain_cookies: CrossSubDomainCookiesConfig = Field(
        default_factory=CrossSubDomainCookiesConfig
    )
    cookies: Dict[str, Any] = Field(default_factory=dict)
    default_cookie_attributes: Dict[str, Any] = Field(default_factory=dict)
    cookie_prefix: Optional[str] = None
    database: AdvancedDatabaseConfig = Field(default_factory=AdvancedDatabaseConfig)


class TelemetryConfig(_Section):
    enabled: bool = False
    debug: bool = False


class PluginConfig(_Section):
    """One enabled authentication plugin."""

    id: str = Field(..., description="Plugin identifier, e.g. organization")
    name: str = Field(..., description="Display name")
    options: Dict[str, Any] = Field(default_factory=dict)


class AuthConfig(_Section):
    """The normalized configuration of a host project."""

    app_name: str = Field("Better Auth", description="Application display name")
    base_url: Optional[str] = Field(None, alias="baseURL")
    base_path: str = Field("/api/auth", description="Mount path of the auth routes")
    secret: bool = Field(False, description="Whether a secret is configured")
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    social_providers: Dict[str, Any] = Field(
        default_factory=dict, description="Provider id to provider settings"
    )
    providers: List[Dict[str, Any]] = Field(
        default_factory=list, description="Flat provider list derived from socialProviders"
    )
    email_and_password: EmailAndPasswordConfig = Field(default_factory=EmailAndPasswordConfig)
    email_verification: EmailVerificationConfig = Field(
        default_factory=EmailVerificationConfig
    )
    user: UserConfig = Field(default_factory=UserConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    account: AccountConfig = Field(default_factory=AccountConfig)
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    advanced: AdvancedConfig = Field(default_factory=AdvancedConfig)
    disabled_paths: List[str] = Field(default_factory=list)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    trusted_origins: List[str] = Field(default_factory=list)
    plugins: List[PluginConfig] = Field(default_factory=list)

    def dump(self) -> dict[str, Any]:
        """Return the camelCase JSON representation."""
        return self.model_dump(by_alias=True, mode="json")
