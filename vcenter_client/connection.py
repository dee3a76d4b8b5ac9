"""vCenter session handling (pyVmomi SmartConnect / Disconnect)"""

import logging
import ssl
from typing import Optional

from pyVim.connect import SmartConnect, Disconnect

from vcenter_client.config import Settings, settings as default_settings
from vcenter_client.errors import SessionError

logger = logging.getLogger(__name__)

# Seconds a socket read may outlast the longest WaitForUpdatesEx wait
POLL_TIMEOUT_MARGIN = 30


def _ssl_context(verify_ssl: bool) -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    if verify_ssl:
        context.load_default_certs()
    else:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def session_timeout(settings: Settings) -> int:
    """Per-connection socket timeout, longer than any update poll on the session."""
    return max(settings.connect_timeout, settings.poll_wait_seconds + POLL_TIMEOUT_MARGIN)


def connect_vcenter(settings: Optional[Settings] = None):
    """Open a new vCenter session.

    Every call returns an independent session; nothing is cached here.

    Args:
        settings: Connection settings, defaults to the environment settings

    Returns:
        vim.ServiceInstance

    Raises:
        SessionError: if SmartConnect fails
    """
    settings = settings or default_settings
    host = settings.host

    logger.info(f"Attempting to connect to vCenter at {host}...")

    try:
        service_instance = SmartConnect(
            host=host,
            user=settings.user,
            pwd=settings.password,
            port=settings.port,
            sslContext=_ssl_context(settings.verify_ssl),
            httpConnectionTimeout=session_timeout(settings),
        )
    except Exception as e:
        logger.error(f"Failed to connect to vCenter at {host}: {e}")
        raise SessionError.wrap(e, "connect_vcenter") from e

    logger.info(f"Connected to vCenter at {host}")
    return service_instance


def disconnect_vcenter(service_instance) -> None:
    """Close a vCenter session; failures are logged, not raised."""
    if service_instance is None:
        return
    try:
        Disconnect(service_instance)
    except Exception as e:
        logger.warning(f"vCenter disconnect failed: {e}")
