#!/usr/bin/env python3
"""
vCenter VM Power Script
=======================

Lists the power state of every VM in vCenter and optionally runs a power
operation on some of them, waiting for each task to finish.

Requirements:
- Python 3.9+
- pip install -e .

Usage:
    python vcenter-power-script.py                       # list VMs
    python vcenter-power-script.py powerOn vm-a vm-b     # power on by name

Connection settings come from VCENTER_HOST, VCENTER_USER,
VCENTER_PASSWORD and VCENTER_VERIFY_SSL.
"""

import getpass
import logging
import sys

from vcenter_client import POWER_OPERATIONS, Settings, VCenterClient
from vcenter_client.errors import PowerOperationFailed, VCenterClientError
from vcenter_client.models import outcomes_as_dicts

logger = logging.getLogger("vcenter-power-script")


def print_power_states(vc: VCenterClient) -> None:
    states = vc.get_power_states_in_container(vc.root_folder)
    if not states:
        print("No VMs found in vCenter")
        return
    print(f"{'VM':40} {'POWER STATE':15} MOREF")
    print("-" * 70)
    for state in sorted(states, key=lambda s: s.name):
        print(f"{state.name:40} {state.power_state:15} {state.obj._moId}")
    print(f"\n✓ Found {len(states)} VMs\n")


def run_power_op(vc: VCenterClient, power_op: str, names) -> bool:
    print(f"Running {power_op} on {', '.join(names)}...")
    try:
        outcomes = vc.power_op_by_name(names, power_op)
    except PowerOperationFailed as e:
        print(f"✗ {e}")
        for outcome in outcomes_as_dicts(e.outcomes):
            marker = "✗" if outcome['is_error'] else "✓"
            print(f"  {marker} {outcome['obj']}: {outcome['result']}")
        return False

    for outcome in outcomes_as_dicts(outcomes):
        print(f"  ✓ {outcome['obj']}: {outcome['result']}")
    return True


def main():
    settings = Settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    args = sys.argv[1:]
    if args and args[0] not in POWER_OPERATIONS:
        print(f"Unknown power operation {args[0]!r}; expected one of: {', '.join(POWER_OPERATIONS)}")
        sys.exit(2)

    if not settings.password:
        settings.password = getpass.getpass(f"vCenter Password for {settings.user}: ")

    try:
        with VCenterClient(settings) as vc:
            print_power_states(vc)
            success = True
            if args:
                success = run_power_op(vc, args[0], args[1:])
        sys.exit(0 if success else 1)
    except KeyboardInterrupt:
        print("\n\n✗ Operation cancelled by user")
        sys.exit(130)
    except VCenterClientError as e:
        logger.error(e)
        sys.exit(1)


if __name__ == "__main__":
    main()
