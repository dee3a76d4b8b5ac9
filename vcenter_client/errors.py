"""
vCenter Client Errors

Exception taxonomy for the client plus a mapping of vSphere fault types
to readable messages used when wrapping transport failures.
"""

from typing import Any, Dict, List, Optional, Tuple
import re


# Mapping of vSphere fault patterns to readable messages
VCENTER_ERROR_MESSAGES: Dict[str, Dict[str, Any]] = {
    'vim.fault.InvalidLogin': {
        'title': 'Authentication Failed',
        'message': 'Invalid credentials for vCenter connection.',
        'is_recoverable': False,
    },
    'vim.fault.NotAuthenticated': {
        'title': 'Session Expired',
        'message': 'The vCenter session is no longer authenticated.',
        'is_recoverable': True,
    },
    'vim.fault.NoPermission': {
        'title': 'Permission Denied',
        'message': 'Insufficient permissions to perform this operation.',
        'is_recoverable': False,
    },
    'vmodl.fault.ManagedObjectNotFound': {
        'title': 'Object Not Found',
        'message': 'The managed object no longer exists in vCenter.',
        'is_recoverable': False,
    },
    'vmodl.query.InvalidProperty': {
        'title': 'Invalid Property',
        'message': 'A requested property path does not exist on the object type.',
        'is_recoverable': False,
    },
    'vmodl.fault.InvalidType': {
        'title': 'Invalid Type',
        'message': 'The managed object type is not valid for this request.',
        'is_recoverable': False,
    },
    'vim.fault.InvalidPowerState': {
        'title': 'Invalid Power State',
        'message': 'The VM is not in a power state that allows this operation.',
        'is_recoverable': True,
    },
    'vim.fault.InvalidState': {
        'title': 'Invalid State',
        'message': 'The object is in an invalid state for this operation.',
        'is_recoverable': True,
    },
    'vim.fault.TaskInProgress': {
        'title': 'Task In Progress',
        'message': 'Another task is already running against this object.',
        'is_recoverable': True,
    },
    'vim.fault.ToolsUnavailable': {
        'title': 'VMware Tools Unavailable',
        'message': 'Guest operations require VMware Tools running in the VM.',
        'is_recoverable': True,
    },
    'vmodl.fault.RequestCanceled': {
        'title': 'Request Cancelled',
        'message': 'The request was cancelled in vCenter.',
        'is_recoverable': True,
    },
    'vim.fault.Timedout': {
        'title': 'Operation Timeout',
        'message': 'The vCenter operation timed out.',
        'is_recoverable': True,
    },
    'vmodl.fault.NotSupported': {
        'title': 'Operation Not Supported',
        'message': 'This operation is not supported on the target object.',
        'is_recoverable': False,
    },
}


def parse_vcenter_error(error: Exception) -> Tuple[str, Optional[Dict[str, Any]]]:
    """
    Parse a vCenter exception and return a readable message.

    Returns:
        Tuple of (friendly_message, error_info_dict or None)
    """
    error_str = str(error)
    error_type = type(error).__name__

    msg_match = re.search(r"msg\s*=\s*'([^']+)'", error_str)
    actual_msg = msg_match.group(1) if msg_match else None

    for fault_pattern, info in VCENTER_ERROR_MESSAGES.items():
        fault_name = fault_pattern.rsplit('.', 1)[-1]
        if error_type in (fault_pattern, fault_name) or fault_pattern in error_str:
            return info['message'], {
                'title': info['title'],
                'is_recoverable': info['is_recoverable'],
                'original_message': actual_msg,
                'fault_type': fault_pattern,
            }

    if actual_msg:
        return actual_msg, None

    return error_str or error_type, None


def _describe_moref(moref: Any) -> str:
    if moref is None:
        return ""
    moid = getattr(moref, '_moId', None)
    if moid is None:
        return str(moref)
    return f"{getattr(type(moref), '_wsdlName', type(moref).__name__)}:{moid}"


class VCenterClientError(Exception):
    """Base exception for vCenter client operations"""

    def __init__(self, message: str, operation: Optional[str] = None, moref: Any = None):
        self.message = message
        self.operation = operation
        self.moref = moref
        super().__init__(self.message)

    @classmethod
    def wrap(cls, error: Exception, operation: str, moref: Any = None):
        """Build an instance describing a transport failure with its context."""
        friendly, info = parse_vcenter_error(error)
        target = _describe_moref(moref)
        where = f"{operation} ({target})" if target else operation
        if info:
            message = f"{where} failed: {info['title']}: {friendly}"
        else:
            message = f"{where} failed: {friendly}"
        return cls(message, operation=operation, moref=moref)


# Local spec construction errors

class InvalidManagedObjectType(VCenterClientError):
    """Type name is not in the managed object type catalog"""


class InvalidSelection(VCenterClientError):
    """Property selection given as an empty explicit set"""


class EmptyFilter(VCenterClientError):
    """Filter spec built without property specs or object specs"""


# Transport / protocol errors

class SessionError(VCenterClientError):
    """Opening a vCenter session failed"""


class FilterCreateError(VCenterClientError):
    """CreateFilter on the PropertyCollector failed"""


class QueryFailed(VCenterClientError):
    """A container view or RetrievePropertiesEx exchange failed"""


class UpdatePollError(VCenterClientError):
    """WaitForUpdatesEx failed while watching an object"""


class CommandFailed(VCenterClientError):
    """A vSphere method invoked through run_command failed"""


# Caller input errors

class InvalidPowerOp(VCenterClientError):
    """Power operation name is not one of POWER_OPERATIONS"""


class ObjectsNotFound(VCenterClientError):
    """One or more names did not resolve to exactly one object"""

    def __init__(self, message: str, missing: Optional[List[str]] = None,
                 ambiguous: Optional[List[str]] = None):
        super().__init__(message, operation='resolve_names')
        self.missing = missing or []
        self.ambiguous = ambiguous or []


class NoTargets(VCenterClientError):
    """Power operation called without any target"""


class PowerOperationFailed(VCenterClientError):
    """At least one object's power task ended in error"""

    def __init__(self, message: str, outcomes: List[Any], operation: Optional[str] = None):
        super().__init__(message, operation=operation)
        self.outcomes = outcomes

    @property
    def failures(self) -> List[Any]:
        return [o for o in self.outcomes if o.is_error]


# Watch aborted by caller policy

class WatchCancelled(VCenterClientError):
    """Watch stopped because its cancel event was set"""


class WatchTimedOut(VCenterClientError):
    """Watch stopped because its deadline passed"""
