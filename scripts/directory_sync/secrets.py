"""Cloud-native secret resolution.

Resolves secrets from AWS Secrets Manager or GCP Secret Manager based on
the reference prefix, falling back to the literal value for local
development.
"""

from __future__ import annotations

import json
import logging
import os
from urllib.parse import quote_plus

logger = logging.getLogger("directory_sync.secrets")

# Prefixes that indicate a cloud secret reference
_AWS_PREFIX = "aws-secret://"
_GCP_PREFIX = "gcp-secret://"


class SecretResolutionError(RuntimeError):
    """A secret reference could not be resolved."""


def resolve_secret(value: str) -> str:
    """Resolve a secret reference to its plaintext value.

    Supported formats:
      - "aws-secret://secret-name"         -> AWS Secrets Manager
      - "aws-secret://secret-name#key"     -> AWS Secrets Manager (JSON key)
      - "gcp-secret://project/secret/ver"  -> GCP Secret Manager
      - anything else                      -> returned as-is (env var / literal)
    """
    try:
        if value.startswith(_AWS_PREFIX):
            return _resolve_aws_secret(value[len(_AWS_PREFIX):])
        if value.startswith(_GCP_PREFIX):
            return _resolve_gcp_secret(value[len(_GCP_PREFIX):])
    except SecretResolutionError:
        raise
    except Exception as exc:
        raise SecretResolutionError(f"Cannot resolve secret reference: {exc}") from exc
    return value


def _resolve_aws_secret(ref: str) -> str:
    """Fetch a secret from AWS Secrets Manager.

    ref format: "secret-name" or "secret-name#json_key"
    """
    import boto3

    parts = ref.split("#", 1)
    secret_name = parts[0]
    json_key = parts[1] if len(parts) > 1 else None

    region = os.environ.get("AWS_REGION", "us-east-1")
    client = boto3.client("secretsmanager", region_name=region)

    logger.info("Resolving AWS secret %s", secret_name)
    resp = client.get_secret_value(SecretId=secret_name)
    secret_string = resp["SecretString"]

    if json_key:
        data = json.loads(secret_string)
        return str(data[json_key])
    return secret_string


def _resolve_gcp_secret(ref: str) -> str:
    """Fetch a secret from GCP Secret Manager.

    ref format: "projects/PROJECT/secrets/NAME/versions/VERSION"
             or "NAME" (auto-resolves project from metadata + latest version)
    """
    from google.cloud import secretmanager

    client = secretmanager.SecretManagerServiceClient()

    if ref.startswith("projects/"):
        name = ref
    else:
        project = os.environ.get("GCP_PROJECT_ID", "")
        if not project:
            project = _gcp_project_from_metadata()
        name = f"projects/{project}/secrets/{ref}/versions/latest"

    logger.info("Resolving GCP secret %s", name)
    response = client.access_secret_version(request={"name": name})
    return response.payload.data.decode("UTF-8")


def _gcp_project_from_metadata() -> str:
    """Fetch GCP project ID from the metadata server (available in Cloud Run/GCE)."""
    import requests
    try:
        resp = requests.get(
            "http://metadata.google.internal/computeMetadata/v1/project/project-id",
            headers={"Metadata-Flavor": "Google"},
            timeout=2,
        )
        resp.raise_for_status()
        return resp.text
    except requests.RequestException as exc:
        raise SecretResolutionError(
            "Cannot determine GCP project ID. Set GCP_PROJECT_ID env var."
        ) from exc


def resolve_mongo_uri() -> str:
    """Resolve MONGO_URI from env, with cloud secret support."""
    uri = os.environ.get("MONGO_URI", "")
    if uri:
        return resolve_secret(uri)

    # Fall back to MONGO_* variables
    host = os.environ.get("MONGO_HOST", "localhost")
    port = os.environ.get("MONGO_PORT", "27017")
    user = os.environ.get("MONGO_USER", "")
    password = os.environ.get("MONGO_PASSWORD", "")

    if user:
        # Password might be a secret reference
        password = resolve_secret(password)
        return f"mongodb://{quote_plus(user)}:{quote_plus(password)}@{host}:{port}/"
    return f"mongodb://{host}:{port}/"
