"""
Authentication handling for Azure DevOps
Supports Personal Access Tokens and Azure AD tokens via azure-identity
"""
import logging
import os
import time
from typing import Any, Mapping, Optional

from azure.identity import DefaultAzureCredential, ClientSecretCredential
from msrest.authentication import Authentication, BasicAuthentication

from .config import AdoConfig

logger = logging.getLogger(__name__)

# Azure DevOps resource ID for token acquisition
AZURE_DEVOPS_RESOURCE_ID = "499b84ac-1321-427f-aa17-267ca6975798"
AZURE_DEVOPS_SCOPE = f"{AZURE_DEVOPS_RESOURCE_ID}/.default"

# Refresh tokens this many seconds before they expire
TOKEN_REFRESH_MARGIN_SECONDS = 300


class TokenCredentialAuthentication(Authentication):
    """
    msrest authentication backed by an azure-identity token credential.

    The bearer token is fetched lazily and refreshed shortly before it
    expires, so long-running servers keep working past the first hour.
    """

    def __init__(self, credential: Any, scope: str = AZURE_DEVOPS_SCOPE):
        super().__init__()
        self.credential = credential
        self.scope = scope
        self._token = None

    def _current_token(self) -> str:
        if self._token is None or self._token.expires_on - TOKEN_REFRESH_MARGIN_SECONDS <= time.time():
            logger.debug("Acquiring Azure AD token for Azure DevOps")
            self._token = self.credential.get_token(self.scope)
        return self._token.token

    def signed_session(self, session=None):
        session = super().signed_session(session)
        session.headers['Authorization'] = f"Bearer {self._current_token()}"
        return session

    def close(self):
        close = getattr(self.credential, 'close', None)
        if close:
            close()


def build_credentials(
    config: AdoConfig,
    environ: Optional[Mapping[str, str]] = None
) -> Authentication:
    """
    Choose the credential for one configuration.

    1. Personal Access Token (config.pat)
    2. Service Principal (AZURE_CLIENT_ID, AZURE_CLIENT_SECRET, AZURE_TENANT_ID)
    3. DefaultAzureCredential (managed identity, Azure CLI login, ...)

    Args:
        config: Instance configuration
        environ: Mapping to read service principal settings from (defaults to os.environ)

    Returns:
        msrest Authentication handed to the azure-devops Connection
    """
    if config.pat:
        logger.info("Authenticating with Personal Access Token")
        return BasicAuthentication('', config.pat)

    env = os.environ if environ is None else environ
    client_id = env.get("AZURE_CLIENT_ID")
    client_secret = env.get("AZURE_CLIENT_SECRET")
    tenant_id = env.get("AZURE_TENANT_ID")

    if all([client_id, client_secret, tenant_id]):
        logger.info("Authenticating with Service Principal")
        credential = ClientSecretCredential(
            tenant_id=tenant_id,
            client_id=client_id,
            client_secret=client_secret
        )
    else:
        logger.info("Authenticating with DefaultAzureCredential")
        credential = DefaultAzureCredential()

    return TokenCredentialAuthentication(credential)
