"""Credential and endpoint precedence over legacy and multi-profile settings.

capictl keeps two generations of configuration side by side: a flat legacy
block (``api``, ``token``, ``uaa_endpoint`` ...) and named profiles under
``apis`` keyed by host name. Values set explicitly in the legacy block always
win over the current profile so that existing setups keep their behaviour.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from capictl.config.constants import OUTPUT_TABLE


@dataclass
class Profile:
    endpoint: str = ""
    token: str = ""
    refresh_token: str = ""
    uaa_endpoint: str = ""
    uaa_token: str = ""
    uaa_refresh_token: str = ""
    skip_ssl_validation: bool = False


@dataclass
class LegacySettings:
    api: str = ""
    token: str = ""
    refresh_token: str = ""
    uaa_endpoint: str = ""
    uaa_token: str = ""
    uaa_refresh_token: str = ""
    skip_ssl_validation: bool = False


@dataclass
class CliConfig:
    legacy: LegacySettings = field(default_factory=LegacySettings)
    apis: dict[str, Profile] = field(default_factory=dict)
    current_api: str = ""
    output: str = OUTPUT_TABLE

    def current_profile(self) -> Profile | None:
        if not self.current_api:
            return None
        return self.apis.get(self.current_api)

    def is_current(self, key: str) -> bool:
        return bool(self.current_api) and key == self.current_api and key in self.apis


@dataclass(frozen=True)
class ResolvedIdentity:
    endpoint: str
    token: str
    skip_tls: bool

    @property
    def authenticated(self) -> bool:
        return bool(self.token)


class ConfigResolver:
    """Answer "which token, which platform API, skip TLS?" for one config."""

    def __init__(self, config: CliConfig) -> None:
        self._config = config

    @property
    def config(self) -> CliConfig:
        return self._config

    def _profile(self) -> Profile | None:
        return self._config.current_profile()

    def get_token(self) -> str:
        """Return the access token to present to the UAA, or ``""``.

        Order: legacy UAA token, current profile UAA token, current profile
        platform token, legacy platform token.
        """

        legacy = self._config.legacy
        if legacy.uaa_token:
            return legacy.uaa_token
        profile = self._profile()
        if profile is not None:
            if profile.uaa_token:
                return profile.uaa_token
            if profile.token:
                return profile.token
        return legacy.token or ""

    def set_token(self, token: str) -> None:
        profile = self._profile()
        if profile is not None:
            profile.uaa_token = token
        else:
            self._config.legacy.uaa_token = token

    def set_refresh_token(self, token: str) -> None:
        profile = self._profile()
        if profile is not None:
            profile.uaa_refresh_token = token
        else:
            self._config.legacy.uaa_refresh_token = token

    def is_authenticated(self) -> bool:
        return bool(self.get_token())

    def platform_endpoint(self) -> str:
        if self._config.legacy.api:
            return self._config.legacy.api
        profile = self._profile()
        if profile is not None and profile.endpoint:
            return profile.endpoint
        return ""

    def profile_uaa_endpoint(self) -> str:
        profile = self._profile()
        return profile.uaa_endpoint if profile is not None else ""

    def skip_tls(self) -> bool:
        if self._config.legacy.skip_ssl_validation:
            return True
        profile = self._profile()
        return bool(profile is not None and profile.skip_ssl_validation)

    def resolve_identity(self, endpoint: str) -> ResolvedIdentity:
        return ResolvedIdentity(
            endpoint=endpoint,
            token=self.get_token(),
            skip_tls=self.skip_tls(),
        )


__all__ = [
    "CliConfig",
    "ConfigResolver",
    "LegacySettings",
    "Profile",
    "ResolvedIdentity",
]
