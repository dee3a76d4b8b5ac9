"""
PropertyCollector filter spec construction.

Pure builders for the PropertySpec / TraversalSpec / ObjectSpec / FilterSpec
objects handed to RetrievePropertiesEx and CreateFilter. Nothing here talks
to vCenter; misuse fails synchronously.
"""

from typing import List, Optional, Sequence, Union

from pyVmomi import vim

from vcenter_client.errors import EmptyFilter, InvalidSelection
from vcenter_client.models import managed_type

ALL_PROPERTIES = "all"

Selection = Optional[Union[str, Sequence[str]]]


def build_property_spec(type_name: str, selection: Selection = None) -> vim.PropertyCollector.PropertySpec:
    """
    Build a PropertySpec for one managed object type.

    Args:
        type_name: Catalog type name, e.g. 'VirtualMachine'
        selection: None or "all" for every property, a single property path,
            or an ordered list of property paths

    Returns:
        vim.PropertyCollector.PropertySpec
    """
    obj_type = managed_type(type_name)

    if selection is None or selection == ALL_PROPERTIES:
        return vim.PropertyCollector.PropertySpec(type=obj_type, all=True)

    if isinstance(selection, str):
        path_set = [selection]
    else:
        path_set = list(selection)
        if not path_set:
            raise InvalidSelection(f"Empty property selection for {type_name}")

    return vim.PropertyCollector.PropertySpec(
        type=obj_type,
        pathSet=path_set,
        all=False
    )


def build_traversal_spec() -> vim.PropertyCollector.TraversalSpec:
    """
    Build TraversalSpec for ContainerView traversal.

    type MUST be vim.view.ContainerView (explicit, never dynamic).
    """
    return vim.PropertyCollector.TraversalSpec(
        name="viewTraversal",
        type=vim.view.ContainerView,
        path="view",
        skip=False
    )


def build_container_traversal_object_spec(view_ref) -> vim.PropertyCollector.ObjectSpec:
    """ObjectSpec listing the children of a ContainerView, skipping the view itself."""
    return vim.PropertyCollector.ObjectSpec(
        obj=view_ref,
        selectSet=[build_traversal_spec()],
        skip=True
    )


def build_single_object_spec(moref, skip: bool = False) -> vim.PropertyCollector.ObjectSpec:
    """ObjectSpec targeting exactly one object, no traversal."""
    return vim.PropertyCollector.ObjectSpec(obj=moref, skip=skip)


def build_filter_spec(
    property_specs: List[vim.PropertyCollector.PropertySpec],
    object_specs: List[vim.PropertyCollector.ObjectSpec]
) -> vim.PropertyCollector.FilterSpec:
    """Combine property and object specs; both sets must be non-empty."""
    if not property_specs:
        raise EmptyFilter("FilterSpec requires at least one PropertySpec")
    if not object_specs:
        raise EmptyFilter("FilterSpec requires at least one ObjectSpec")

    return vim.PropertyCollector.FilterSpec(
        propSet=list(property_specs),
        objectSet=list(object_specs)
    )
