"""Instance handle model."""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


DEFAULT_API_VERSION = "59.0"


@dataclass(frozen=True)
class InstanceHandle:
    """
    Connection details for one platform instance.

    Supplied by the session collaborator and passed explicitly to every
    call. It is never stored in module-level state.
    """
    instance_url: str
    access_token: str = field(repr=False)
    instance_id: str = ""
    is_sandbox: bool = False
    name: str = ""
    api_version: str = DEFAULT_API_VERSION

    @property
    def base_url(self) -> str:
        """Data API root for this instance."""
        return f"{self.instance_url.rstrip('/')}/services/data/v{self.api_version}"

    @property
    def display_name(self) -> str:
        return self.name or self.instance_id or self.instance_url

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (without the credential)."""
        return {
            "instance_url": self.instance_url,
            "instance_id": self.instance_id,
            "is_sandbox": self.is_sandbox,
            "name": self.name,
            "api_version": self.api_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstanceHandle":
        """Create from dictionary representation."""
        instance_url = data.get("instance_url") or data.get("instanceUrl")
        access_token = data.get("access_token") or data.get("sessionId")
        if not instance_url or not access_token:
            raise ValueError("Instance handle requires instance_url and access_token")

        return cls(
            instance_url=instance_url,
            access_token=access_token,
            instance_id=data.get("instance_id") or data.get("orgId") or "",
            is_sandbox=bool(data.get("is_sandbox", data.get("isSandbox", False))),
            name=data.get("name") or data.get("orgName") or "",
            api_version=str(data.get("api_version", DEFAULT_API_VERSION)),
        )

    @classmethod
    def from_env(cls, prefix: str, environ: Optional[Dict[str, str]] = None) -> "InstanceHandle":
        """
        Build a handle from environment variables.

        Reads ``{PREFIX}_INSTANCE_URL``, ``{PREFIX}_ACCESS_TOKEN``,
        ``{PREFIX}_INSTANCE_ID``, ``{PREFIX}_IS_SANDBOX``, ``{PREFIX}_NAME``
        and ``{PREFIX}_API_VERSION``.
        """
        env = os.environ if environ is None else environ
        prefix = prefix.upper()
        return cls.from_dict({
            "instance_url": env.get(f"{prefix}_INSTANCE_URL"),
            "access_token": env.get(f"{prefix}_ACCESS_TOKEN"),
            "instance_id": env.get(f"{prefix}_INSTANCE_ID", ""),
            "is_sandbox": env.get(f"{prefix}_IS_SANDBOX", "").lower() in ("1", "true", "yes"),
            "name": env.get(f"{prefix}_NAME", ""),
            "api_version": env.get(f"{prefix}_API_VERSION", DEFAULT_API_VERSION),
        })
