"""Temporal client factory.

Creates connections to a local Temporal server or Temporal Cloud using
settings from the environment (see core.config).
"""

from pathlib import Path
from typing import Optional, Union

from temporalio.client import Client
from temporalio.service import TLSConfig

from core.config import Settings, get_settings

LOCAL_ENDPOINT = "localhost:7233"


async def get_temporal_client(settings: Optional[Settings] = None) -> Client:
    """Create and return a Temporal client.

    Reads configuration from environment variables:
    - TEMPORAL_ENDPOINT: Server endpoint (default "localhost:7233")
    - TEMPORAL_NAMESPACE: Namespace (default "default")
    - TEMPORAL_API_KEY: Temporal Cloud API key; enables TLS when set
    - TEMPORAL_CERT_PATH: CA certificate for a self-hosted TLS server (optional)

    Without an API key or certificate the client connects in plaintext,
    which is what a local `temporal server start-dev` expects.

    Returns:
        Connected Temporal client
    """
    settings = settings or get_settings()
    endpoint = settings.temporal_endpoint or LOCAL_ENDPOINT

    tls: Union[bool, TLSConfig] = False
    if settings.temporal_cert_path:
        tls = TLSConfig(server_root_ca_cert=Path(settings.temporal_cert_path).read_bytes())
    elif settings.temporal_api_key:
        tls = True

    client = await Client.connect(
        endpoint,
        namespace=settings.temporal_namespace,
        tls=tls,
        api_key=settings.temporal_api_key,
    )

    return client
