"""Protocol client factory for creating clients from configuration."""

import logging

from wapair.core.config import ProtocolConfig
from wapair.protocol.base import ProtocolClient

logger = logging.getLogger(__name__)


def create_protocol_client(config: ProtocolConfig) -> ProtocolClient:
    """Create a protocol client from configuration.

    Args:
        config: Protocol section of the application config.

    Returns:
        Configured ProtocolClient instance.

    Raises:
        ValueError: If the provider is unsupported.
    """
    if config.provider == "pyaileys":
        from wapair.protocol.pyaileys_client import PyaileysClient

        logger.info("Using pyaileys protocol client")
        client = PyaileysClient(pairing_request_delay_seconds=config.pairing_request_delay_seconds)
        supported = client.supports_pairing_codes()
        if supported is None:
            logger.warning("pyaileys is not installed; every session will fail until wapair[whatsapp] is installed")
        elif not supported:
            logger.warning("Installed pyaileys cannot request pairing codes; pairing sessions will fail with 503")
        return client
    raise ValueError(f"Unsupported protocol provider: {config.provider}")
