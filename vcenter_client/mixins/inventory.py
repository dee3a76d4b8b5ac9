"""Inventory queries through ContainerView + RetrievePropertiesEx"""

import logging
from typing import Any, Dict, Iterable, List, Tuple, Union

from pyVmomi import vim

from vcenter_client.errors import QueryFailed, VCenterClientError
from vcenter_client.models import (
    VMPowerState,
    managed_type,
    moref_id,
    moref_type,
    parse_object_content,
)
from vcenter_client.property_specs import (
    Selection,
    build_container_traversal_object_spec,
    build_filter_spec,
    build_property_spec,
    build_single_object_spec,
)

logger = logging.getLogger(__name__)

ObjectProperties = Tuple[Any, Dict[str, Any]]


class InventoryMixin:
    """Mixin providing one-shot property retrieval.

    Expects the host class to expose ``content`` (vim.ServiceContent of the
    primary session) and ``root_folder``.
    """

    def _retrieve(self, filter_spec, operation: str, moref=None) -> List[ObjectProperties]:
        """Run RetrievePropertiesEx, following pagination tokens."""
        pc = self.content.propertyCollector
        result = pc.RetrievePropertiesEx(
            specSet=[filter_spec],
            options=vim.PropertyCollector.RetrieveOptions()
        )
        if result is None:
            return []

        objects = list(result.objects or [])
        token = result.token
        while token:
            result = pc.ContinueRetrievePropertiesEx(token)
            objects.extend(result.objects or [])
            token = result.token

        logger.debug(f"{operation} fetched {len(objects)} objects")
        return [parse_object_content(oc) for oc in objects]

    def _create_view(self, container, type_name: str):
        return self.content.viewManager.CreateContainerView(
            container=container,
            type=[managed_type(type_name)],
            recursive=True
        )

    def _destroy_view(self, view_ref) -> None:
        if view_ref is None:
            return
        try:
            view_ref.Destroy()
        except Exception as e:
            logger.warning(f"Failed to destroy ContainerView: {e}")

    def list_by_type_and_properties(self, container, type_name: str,
                                    selection: Selection = None) -> List[ObjectProperties]:
        """
        Retrieve properties of every object of a type under a container.

        Args:
            container: Folder / Datacenter / ... MoRef to search recursively
            type_name: Catalog type name, e.g. 'VirtualMachine'
            selection: None / "all", one property path, or a list of paths

        Returns:
            List of (obj, {property_name: value}) tuples

        Raises:
            QueryFailed: if creating the view or retrieving properties fails
        """
        property_spec = build_property_spec(type_name, selection)

        view_ref = None
        try:
            view_ref = self._create_view(container, type_name)
            filter_spec = build_filter_spec(
                [property_spec],
                [build_container_traversal_object_spec(view_ref)]
            )
            return self._retrieve(filter_spec, "list_by_type_and_properties", container)
        except VCenterClientError:
            raise
        except Exception as e:
            raise QueryFailed.wrap(e, "list_by_type_and_properties", container) from e
        finally:
            self._destroy_view(view_ref)

    def list_by_type(self, container, type_name: str) -> List[ObjectProperties]:
        """All objects of a type under a container, with all their properties."""
        return self.list_by_type_and_properties(container, type_name)

    def list_by_type_and_name(self, container, type_name: str,
                              names: Union[str, Iterable[str]]):
        """
        Find objects of a type by exact (case-sensitive) name.

        Returns the MoRef itself when exactly one object matches, otherwise
        the list of matching MoRefs (possibly empty).
        """
        matches = [obj for obj, _ in self._match_names(container, type_name, names)]
        if len(matches) == 1:
            return matches[0]
        return matches

    def _match_names(self, container, type_name: str,
                     names: Union[str, Iterable[str]]) -> List[Tuple[Any, str]]:
        if isinstance(names, str):
            names = [names]
        wanted = set(names)

        entries = self.list_by_type_and_properties(container, type_name, "name")
        return [
            (obj, props.get("name"))
            for obj, props in entries
            if props.get("name") in wanted
        ]

    def get_properties(self, moref, selection: Selection = None) -> List[ObjectProperties]:
        """Retrieve properties of a single object."""
        type_name = moref_type(moref)
        property_spec = build_property_spec(type_name, selection)

        view_ref = None
        try:
            # Same ContainerView mechanics as container queries, scoped to
            # the object's own type under the root folder.
            view_ref = self._create_view(self.root_folder, type_name)
            filter_spec = build_filter_spec(
                [property_spec],
                [build_single_object_spec(moref)]
            )
            return self._retrieve(filter_spec, "get_properties", moref)
        except VCenterClientError:
            raise
        except Exception as e:
            raise QueryFailed.wrap(e, "get_properties", moref) from e
        finally:
            self._destroy_view(view_ref)

    def get_power_states_in_container(self, container) -> List[VMPowerState]:
        """Name and power state of every VM under a container.

        A VM returned without a summary is reported with empty name and
        power state.
        """
        entries = self.list_by_type_and_properties(container, "VirtualMachine", "summary")

        states = []
        for obj, props in entries:
            summary = props.get("summary")
            if summary is None:
                logger.debug(f"No summary returned for {moref_type(obj)}:{moref_id(obj)}")
                states.append(VMPowerState(obj=obj, name="", power_state=""))
                continue
            states.append(VMPowerState(
                obj=obj,
                name=summary.config.name,
                power_state=str(summary.runtime.powerState),
            ))
        return states
