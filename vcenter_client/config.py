"""
Configuration for the vCenter client.

Reads from environment variables (VCENTER_*) with sensible defaults.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Connection and watch settings loaded from environment."""

    # vCenter connection
    host: str = "vcenter.example.com"
    user: str = "administrator@vsphere.local"
    password: str = ""
    port: int = 443

    # SSL verification (False for self-signed vCenter certs)
    verify_ssl: bool = False

    # Minimum per-connection socket timeout (seconds); raised to outlast poll_wait_seconds
    connect_timeout: int = 30

    # Watch deadline (seconds); 0 or less disables the deadline
    watch_timeout: int = 1800

    # maxWaitSeconds handed to WaitForUpdatesEx per poll
    poll_wait_seconds: int = 60

    # Concurrent power operations per call
    power_op_max_workers: int = 8

    # Logging
    log_level: str = "INFO"

    class Config:
        env_prefix = "VCENTER_"


settings = Settings()
