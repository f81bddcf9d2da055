"""
Auth token provider for Aurora DSQL.
Signs short-lived IAM auth tokens that replace a static database password.
"""

import asyncio
import re
from collections.abc import Callable
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from dsqlbench.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_HOSTNAME_RE = re.compile(
    r"^(?=.{1,253}$)[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$"
)
_REGION_RE = re.compile(r"^[a-z]{2}(?:-[a-z]+)+-\d+$")


class CredentialError(Exception):
    """Ambient identity is missing or the issuer refused to sign."""

    def __init__(
        self,
        message: str,
        reason: str,
        endpoint: str | None = None,
        region: str | None = None,
        admin: bool | None = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.endpoint = endpoint
        self.region = region
        self.admin = admin


class TokenSigner(Protocol):
    """The two signing variants of the DSQL auth token generator."""

    def generate_db_connect_auth_token(self, Hostname: str, Region: str) -> str: ...

    def generate_db_connect_admin_auth_token(self, Hostname: str, Region: str) -> str: ...


SignerFactory = Callable[[str], TokenSigner]


def boto3_signer_factory(region: str) -> TokenSigner:
    """
    Resolve ambient AWS identity and return a dsql client for ``region``.

    Raises:
        CredentialError: If no credentials can be resolved
    """
    session = boto3.Session(region_name=region)
    if session.get_credentials() is None:
        raise CredentialError(
            "No AWS credentials found in the environment", reason="missing_credentials", region=region
        )
    return session.client("dsql", region_name=region)


class TokenProvider:
    """
    Generates auth tokens through an injected signer factory.

    Tokens are never cached: every call signs a new one. Nothing here retries,
    a caller that wants another attempt asks again.
    """

    def __init__(self, signer_factory: SignerFactory | None = None):
        self._signer_factory = signer_factory or boto3_signer_factory

    async def generate_token(self, endpoint: str, region: str, admin: bool) -> str:
        """
        Generate an authentication token for a cluster endpoint.

        Args:
            endpoint: Cluster endpoint (<cluster_id>.dsql.<region>.on.aws)
            region: AWS region code, e.g. "us-east-1"
            admin: Sign for the admin role (True) or a regular role (False)

        Returns:
            str: The bearer token

        Raises:
            CredentialError: On malformed input, missing identity or a rejected signing call
        """
        self._validate(endpoint, region, admin)
        return await asyncio.to_thread(self._sign, endpoint, region, admin)

    def _validate(self, endpoint: str, region: str, admin: bool) -> None:
        if not endpoint or not _HOSTNAME_RE.match(endpoint):
            raise CredentialError(
                f"Malformed cluster endpoint: {endpoint!r}",
                reason="invalid_input",
                endpoint=endpoint,
                region=region,
                admin=admin,
            )
        if not region or not _REGION_RE.match(region):
            raise CredentialError(
                f"Malformed region: {region!r}",
                reason="invalid_input",
                endpoint=endpoint,
                region=region,
                admin=admin,
            )

    def _sign(self, endpoint: str, region: str, admin: bool) -> str:
        try:
            signer = self._signer_factory(region)

            if admin:
                token = signer.generate_db_connect_admin_auth_token(Hostname=endpoint, Region=region)
            else:
                token = signer.generate_db_connect_auth_token(Hostname=endpoint, Region=region)

        except CredentialError as e:
            e.endpoint = e.endpoint or endpoint
            e.admin = admin if e.admin is None else e.admin
            logger.error(
                "Auth token generation failed", endpoint=endpoint, region=region, reason=e.reason
            )
            raise

        except NoCredentialsError as e:
            logger.error("No AWS credentials available", endpoint=endpoint, region=region)
            raise CredentialError(
                f"No AWS credentials available: {e}",
                reason="missing_credentials",
                endpoint=endpoint,
                region=region,
                admin=admin,
            ) from e

        except (BotoCoreError, ClientError) as e:
            logger.error(
                "Auth token signing rejected",
                endpoint=endpoint,
                region=region,
                admin=admin,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise CredentialError(
                f"Token issuer rejected the request: {e}",
                reason="rejected",
                endpoint=endpoint,
                region=region,
                admin=admin,
            ) from e

        if not token:
            raise CredentialError(
                "Token issuer returned an empty token",
                reason="rejected",
                endpoint=endpoint,
                region=region,
                admin=admin,
            )

        logger.debug("Auth token generated", endpoint=endpoint, region=region, admin=admin)
        return str(token)
