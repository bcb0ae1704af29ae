"""
Explicit configuration objects handed to the services at construction time.

Nothing in dhcore reads ambient state on its own: `Config.from_env()` is the
only place environment variables are consulted, and only when called.
"""
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dhcore.internal.constants import DEFAULT_API_VERSION, DEFAULT_HTTP_TIMEOUT


@dataclass
class CoreConfig:
    base_url: str
    api_version: str = DEFAULT_API_VERSION
    access_token: Optional[str] = None
    basic_auth_username: Optional[str] = None
    basic_auth_password: Optional[str] = None
    timeout: float = DEFAULT_HTTP_TIMEOUT

    def __post_init__(self):
        if not self.base_url:
            raise ValueError("base_url cannot be empty")
        if not self.api_version:
            raise ValueError("api_version cannot be empty")
        self.base_url = self.base_url.rstrip("/")


@dataclass
class S3Config:
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    session_token: Optional[str] = None
    region: Optional[str] = None
    endpoint_url: Optional[str] = None


@dataclass
class Config:
    core: CoreConfig
    s3: S3Config = field(default_factory=S3Config)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        env = os.environ if environ is None else environ
        core = CoreConfig(
            base_url=env.get("DHCORE_ENDPOINT", ""),
            api_version=env.get("DHCORE_API_VERSION") or DEFAULT_API_VERSION,
            access_token=env.get("DHCORE_ACCESS_TOKEN") or None,
            basic_auth_username=env.get("DHCORE_USER") or None,
            basic_auth_password=env.get("DHCORE_PASSWORD") or None,
        )
        s3 = S3Config(
            access_key=env.get("AWS_ACCESS_KEY_ID") or None,
            secret_key=env.get("AWS_SECRET_ACCESS_KEY") or None,
            session_token=env.get("AWS_SESSION_TOKEN") or None,
            region=env.get("AWS_REGION") or None,
            endpoint_url=env.get("S3_ENDPOINT_URL") or None,
        )
        return cls(core=core, s3=s3)
