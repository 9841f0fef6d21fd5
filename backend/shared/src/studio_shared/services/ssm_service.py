"""SSM Parameter Store service for Stripe credentials.

Secrets live under ``/studio/{environment}/stripe/...`` as SecureString
parameters. An environment variable with the same purpose takes precedence,
which keeps local development free of AWS access.
"""

import logging
import os
from functools import lru_cache

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

STRIPE_SECRET_KEY = "stripe/secret_key"
STRIPE_WEBHOOK_SECRET = "stripe/webhook_secret"

# Env var overrides per parameter suffix
ENV_OVERRIDES: dict[str, str] = {
    STRIPE_SECRET_KEY: "STRIPE_SECRET_KEY",
    STRIPE_WEBHOOK_SECRET: "STRIPE_WEBHOOK_SECRET",
}


class SSMServiceError(Exception):
    """Raised when a secret cannot be resolved."""


def parameter_path(environment: str, suffix: str) -> str:
    """Full SSM path for a settlement secret."""
    return f"/studio/{environment}/{suffix}"


class SSMService:
    """Retrieves secrets from AWS SSM Parameter Store with in-process caching.

    Usage:
        ssm = get_ssm_service()
        webhook_secret = ssm.get_secret("dev", STRIPE_WEBHOOK_SECRET)
    """

    def __init__(self) -> None:
        self._client = boto3.client("ssm")
        self._cache: dict[str, str] = {}

    def get_secret(self, environment: str, suffix: str) -> str:
        """Resolve a secret from its env var override or SSM.

        Args:
            environment: Environment name used in the SSM path
            suffix: Parameter suffix, e.g. STRIPE_SECRET_KEY

        Returns:
            The secret value.

        Raises:
            SSMServiceError: If neither source provides the secret.
        """
        env_var = ENV_OVERRIDES.get(suffix)
        if env_var and os.environ.get(env_var):
            return os.environ[env_var]
        return self.get_parameter(parameter_path(environment, suffix))

    def get_parameter(self, name: str, *, use_cache: bool = True) -> str:
        """Retrieve a decrypted parameter value from SSM Parameter Store.

        Args:
            name: Full parameter path (e.g., "/studio/dev/stripe/secret_key")
            use_cache: Whether to use cached value if available (default: True)

        Returns:
            The decrypted parameter value.

        Raises:
            SSMServiceError: If parameter cannot be retrieved.
        """
        if use_cache and name in self._cache:
            logger.debug("SSM cache hit for %s", name)
            return self._cache[name]

        try:
            logger.info("Fetching SSM parameter: %s", name)
            response = self._client.get_parameter(Name=name, WithDecryption=True)
            value: str = response["Parameter"]["Value"]
            self._cache[name] = value
            return value

        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code == "ParameterNotFound":
                raise SSMServiceError(f"SSM parameter not found: {name}") from e
            if error_code == "AccessDeniedException":
                raise SSMServiceError(
                    f"Access denied to SSM parameter: {name}. "
                    "Check IAM permissions for ssm:GetParameter."
                ) from e
            raise SSMServiceError(
                f"Failed to retrieve SSM parameter {name}: {e}"
            ) from e


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Get the shared SSMService instance."""
    return SSMService()
