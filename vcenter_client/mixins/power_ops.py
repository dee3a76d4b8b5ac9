"""VM power operations with task completion tracking"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterable, List, Optional, Union

from pyVmomi import VmomiSupport

from vcenter_client.errors import (
    InvalidPowerOp,
    NoTargets,
    ObjectsNotFound,
    PowerOperationFailed,
)
from vcenter_client.models import PowerTaskOutcome, moref_id

logger = logging.getLogger(__name__)

# power_op -> vSphere method
POWER_OPERATIONS = {
    'powerOn': 'PowerOnVM_Task',
    'powerOff': 'PowerOffVM_Task',
    'reset': 'ResetVM_Task',
    'suspend': 'SuspendVM_Task',
    'standby': 'StandbyGuest',
    'shutdown': 'ShutdownGuest',
    'reboot': 'RebootGuest',
}

TASK_FILTER_PROPS = ['info.state', 'info.error']
TASK_END_WAIT_PROP = 'state'
TASK_TERMINAL_STATES = ['success', 'error']


def resolve_power_command(power_op: str) -> str:
    """Map a power op name to its vSphere method, or raise InvalidPowerOp."""
    try:
        return POWER_OPERATIONS[power_op]
    except (KeyError, TypeError):
        raise InvalidPowerOp(f"Invalid power_op given: {power_op!r}", operation=str(power_op)) from None


class PowerOpsMixin:
    """Mixin providing VM power operations.

    Relies on InventoryMixin (name lookup), WatchMixin (task tracking) and
    ``run_command`` / ``root_folder`` / ``settings`` on the host class.
    """

    def power_op_by_name(
        self,
        names: Union[str, Iterable[str]],
        power_op: str,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[PowerTaskOutcome]:
        """
        Run a power operation on VMs looked up by name under the root folder.

        Raises:
            InvalidPowerOp: unknown power_op (checked before any lookup)
            ObjectsNotFound: a name matched no VM or more than one VM
        """
        resolve_power_command(power_op)

        if isinstance(names, str):
            names = [names]
        names = list(names)

        matches = self._match_names(self.root_folder, 'VirtualMachine', names)

        counts = {name: 0 for name in names}
        for _, name in matches:
            counts[name] += 1
        missing = [name for name, count in counts.items() if count == 0]
        ambiguous = [name for name, count in counts.items() if count > 1]

        if missing or ambiguous:
            details = []
            if missing:
                details.append(f"not found: {', '.join(missing)}")
            if ambiguous:
                details.append(f"ambiguous: {', '.join(ambiguous)}")
            raise ObjectsNotFound(
                f"One or more specified VMs not found ({'; '.join(details)})",
                missing=missing,
                ambiguous=ambiguous,
            )

        return self.power_op_by_moref([obj for obj, _ in matches], power_op,
                                      timeout=timeout, cancel_event=cancel_event)

    def power_op_by_moref(
        self,
        morefs,
        power_op: str,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[PowerTaskOutcome]:
        """
        Run a power operation on one or more VMs and wait for every task.

        Tasks run concurrently; outcomes are returned in completion order,
        each carrying its VM MoRef.

        Raises:
            InvalidPowerOp: unknown power_op
            NoTargets: no MoRefs given
            PowerOperationFailed: any task ended in error; carries every
                outcome, successes included
        """
        command = resolve_power_command(power_op)

        if morefs is None:
            morefs = []
        elif isinstance(morefs, VmomiSupport.ManagedObject):
            morefs = [morefs]
        morefs = list(morefs)
        if not morefs:
            raise NoTargets("No ManagedObjectReference(s) given", operation=power_op)

        logger.info(f"Running {command} on {len(morefs)} VM(s)")

        outcomes: List[PowerTaskOutcome] = []
        max_workers = max(1, min(self.settings.power_op_max_workers, len(morefs)))

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            future_to_moref = {
                pool.submit(self._power_op_one, moref, command, timeout, cancel_event): moref
                for moref in morefs
            }
            for future in as_completed(future_to_moref):
                moref = future_to_moref[future]
                try:
                    outcome = future.result()
                except Exception as e:
                    logger.error(f"{command} on {moref_id(moref)} failed: {e}")
                    outcome = PowerTaskOutcome(obj=moref, result=e, is_error=True)
                outcomes.append(outcome)

        failed = [o for o in outcomes if o.is_error]
        if failed:
            raise PowerOperationFailed(
                f"{command} failed on {len(failed)} of {len(outcomes)} VM(s)",
                outcomes=outcomes,
                operation=power_op,
            )

        logger.info(f"{command} completed on {len(outcomes)} VM(s)")
        return outcomes

    def _power_op_one(self, moref, command: str, timeout, cancel_event) -> PowerTaskOutcome:
        task = self.run_command(moref, command)

        # Guest operations (StandbyGuest, ShutdownGuest, RebootGuest) return
        # no task; acceptance of the request is the outcome.
        if task is None:
            return PowerTaskOutcome(obj=moref, result='success')

        values = self.wait_for_values(
            task,
            TASK_FILTER_PROPS,
            TASK_END_WAIT_PROP,
            TASK_TERMINAL_STATES,
            timeout=timeout,
            cancel_event=cancel_event,
        )

        error = values.get('info.error')
        if error is None or error == "":
            return PowerTaskOutcome(obj=moref, result=values.get('info.state'))
        return PowerTaskOutcome(obj=moref, result=error, is_error=True)
