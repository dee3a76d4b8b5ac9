"""VCenterClient: inventory queries, property watches and VM power operations"""

from typing import Callable, Optional

from vcenter_client.config import Settings, settings as default_settings
from vcenter_client.connection import connect_vcenter, disconnect_vcenter
from vcenter_client.errors import CommandFailed, SessionError, VCenterClientError
from vcenter_client.mixins import InventoryMixin, PowerOpsMixin, WatchMixin


class VCenterClient(InventoryMixin, WatchMixin, PowerOpsMixin):
    """
    Client over one primary vCenter session.

    Queries and power commands go through the primary session. Every
    property watch opens its own session through ``session_factory``.

    Usage:
        with VCenterClient() as vc:
            states = vc.get_power_states_in_container(vc.root_folder)
            vc.power_op_by_name(["vm-a"], "powerOn")
    """

    def __init__(self, settings: Optional[Settings] = None,
                 session_factory: Optional[Callable[[], object]] = None):
        self.settings = settings or default_settings
        self.session_factory = session_factory or (lambda: connect_vcenter(self.settings))
        self.service_instance = None
        self._content = None

    def connect(self):
        """Open the primary session (no-op when already connected)."""
        if self.service_instance is None:
            self.service_instance = self.session_factory()
            self._content = self.service_instance.RetrieveContent()
        return self

    def close(self) -> None:
        disconnect_vcenter(self.service_instance)
        self.service_instance = None
        self._content = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def content(self):
        """vim.ServiceContent of the primary session."""
        if self._content is None:
            raise SessionError("vCenter client is not connected", operation="content")
        return self._content

    @property
    def root_folder(self):
        return self.content.rootFolder

    def open_watch_session(self):
        """New session dedicated to one property watch."""
        return self.session_factory()

    def run_command(self, moref, command: str, **kwargs):
        """Invoke a vSphere method by name on a managed object."""
        try:
            method = getattr(moref, command)
        except AttributeError:
            raise CommandFailed(f"{command} is not a method of {type(moref).__name__}",
                                operation=command, moref=moref) from None
        try:
            return method(**kwargs)
        except VCenterClientError:
            raise
        except Exception as e:
            raise CommandFailed.wrap(e, command, moref) from e
