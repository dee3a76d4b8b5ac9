"""
Managed object model: type catalog, MoRef helpers and result records.
"""

from typing import Any, Dict, List

from pydantic import BaseModel
from pyVmomi import vim, vmodl

from vcenter_client.errors import InvalidManagedObjectType


# Recognized managed object types. Only a subset of the vSphere API is
# listed; type names outside it are rejected instead of forwarded.
MANAGED_OBJECT_TYPES: Dict[str, type] = {
    'Alarm': vim.alarm.Alarm,
    'AlarmManager': vim.alarm.AlarmManager,
    'AuthorizationManager': vim.AuthorizationManager,
    'ClusterComputeResource': vim.ClusterComputeResource,
    'ComputeResource': vim.ComputeResource,
    'ContainerView': vim.view.ContainerView,
    'CustomFieldsManager': vim.CustomFieldsManager,
    'CustomizationSpecManager': vim.CustomizationSpecManager,
    'Datacenter': vim.Datacenter,
    'Datastore': vim.Datastore,
    'DiagnosticManager': vim.DiagnosticManager,
    'DistributedVirtualPortgroup': vim.dvs.DistributedVirtualPortgroup,
    'DistributedVirtualSwitch': vim.DistributedVirtualSwitch,
    'Folder': vim.Folder,
    'HostSystem': vim.HostSystem,
    'InventoryView': vim.view.InventoryView,
    'ListView': vim.view.ListView,
    'Network': vim.Network,
    'PropertyCollector': vmodl.query.PropertyCollector,
    'PropertyFilter': vmodl.query.PropertyCollector.Filter,
    'ResourcePool': vim.ResourcePool,
    'ScheduledTask': vim.scheduler.ScheduledTask,
    'ScheduledTaskManager': vim.scheduler.ScheduledTaskManager,
    'ServiceInstance': vim.ServiceInstance,
    'SessionManager': vim.SessionManager,
    'Task': vim.Task,
    'TaskManager': vim.TaskManager,
    'View': vim.view.View,
    'ViewManager': vim.view.ViewManager,
    'VirtualApp': vim.VirtualApp,
    'VirtualMachine': vim.VirtualMachine,
    'VirtualMachineSnapshot': vim.vm.Snapshot,
}


def managed_type(type_name: str) -> type:
    """Resolve a catalog type name to its pyVmomi class."""
    try:
        return MANAGED_OBJECT_TYPES[type_name]
    except (KeyError, TypeError):
        raise InvalidManagedObjectType(f"Unrecognized managed object type: {type_name!r}") from None


def moref_type(moref: Any) -> str:
    """Declared type name of a MoRef, e.g. 'VirtualMachine'."""
    return type(moref)._wsdlName


def moref_id(moref: Any) -> str:
    """Opaque identifier of a MoRef, e.g. 'vm-42'."""
    return str(moref._moId)


def parse_object_content(oc) -> tuple:
    """
    Parse PropertyCollector ObjectContent into (obj, props) tuple.

    Args:
        oc: vim.PropertyCollector.ObjectContent

    Returns:
        Tuple of (vim_object, {property_name: property_value})
    """
    obj = oc.obj
    props = {p.name: p.val for p in (oc.propSet or [])}
    return obj, props


class VMPowerState(BaseModel):
    """Power state snapshot of one VM."""
    obj: Any
    name: str
    power_state: str


class PowerTaskOutcome(BaseModel):
    """Terminal outcome of one VM's power task."""
    obj: Any
    result: Any = None
    is_error: bool = False


def outcomes_as_dicts(outcomes: List[PowerTaskOutcome]) -> List[Dict[str, Any]]:
    """Flatten outcomes for logging / display, MoRefs rendered as 'type:id'."""
    return [
        {
            'obj': f"{moref_type(o.obj)}:{moref_id(o.obj)}",
            'result': str(o.result),
            'is_error': o.is_error,
        }
        for o in outcomes
    ]
