"""
Configuration for the Azure DevOps orchestration layer.

One organization, one project and one credential per running instance;
the configuration is frozen once built.
"""
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .constants import FieldNames

DEFAULT_ORG_HOST = "https://dev.azure.com"


def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AdoConfig:
    """Settings for one organization/project/credential combination."""
    organization_url: str
    project: str
    pat: Optional[str] = field(default=None, repr=False)
    team: Optional[str] = None

    # Cache
    cache_enabled: bool = True
    cache_ttl_seconds: int = 300
    cache_max_size: int = 1000

    # Transport
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 60.0
    timeout_seconds: float = 30.0

    # Story fields written by the bulk update
    test_cases_field: str = FieldNames.CUSTOM_TEST_CASES
    automation_field: str = FieldNames.CUSTOM_AUTOMATION_REQUIREMENTS

    def __post_init__(self):
        if not self.organization_url:
            raise ValueError("organization_url is required")
        if not self.project:
            raise ValueError("project is required")
        # Normalize so path joins never produce '//'
        object.__setattr__(self, 'organization_url', self.organization_url.rstrip('/'))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AdoConfig":
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Raises:
            ValueError: If a required variable is missing
        """
        env = os.environ if environ is None else environ

        org_url = env.get("AZURE_DEVOPS_ORG_URL")
        if not org_url and env.get("AZURE_DEVOPS_ORG"):
            org_url = f"{DEFAULT_ORG_HOST}/{env['AZURE_DEVOPS_ORG']}"

        if not org_url:
            raise ValueError(
                "Missing required environment variable: AZURE_DEVOPS_ORG_URL "
                "(or AZURE_DEVOPS_ORG)"
            )

        project = env.get("AZURE_DEVOPS_PROJECT")
        if not project:
            raise ValueError(
                "Missing required environment variable: AZURE_DEVOPS_PROJECT"
            )

        return cls(
            organization_url=org_url,
            project=project,
            pat=env.get("AZURE_DEVOPS_PAT") or None,
            team=env.get("AZURE_DEVOPS_TEAM") or None,
            cache_enabled=_env_bool(env.get("ADO_CACHE_ENABLED"), True),
            cache_ttl_seconds=int(env.get("ADO_CACHE_TTL_SECONDS") or 300),
            cache_max_size=int(env.get("ADO_CACHE_MAX_SIZE") or 1000),
            max_retries=int(env.get("ADO_MAX_RETRIES") or 3),
            retry_base_delay=float(env.get("ADO_RETRY_BASE_DELAY") or 1.0),
            retry_max_delay=float(env.get("ADO_RETRY_MAX_DELAY") or 60.0),
            timeout_seconds=float(env.get("ADO_TIMEOUT_SECONDS") or 30.0),
            test_cases_field=env.get("ADO_TEST_CASES_FIELD") or FieldNames.CUSTOM_TEST_CASES,
            automation_field=env.get("ADO_AUTOMATION_FIELD") or FieldNames.CUSTOM_AUTOMATION_REQUIREMENTS,
        )
