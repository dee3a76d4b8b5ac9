"""vCenter inventory, property watch and VM power operations client"""

from vcenter_client.client import VCenterClient
from vcenter_client.config import Settings
from vcenter_client.mixins.power_ops import POWER_OPERATIONS
from vcenter_client.mixins.watch import PropertyWatch, WatchState
from vcenter_client.models import PowerTaskOutcome, VMPowerState

__all__ = [
    'VCenterClient',
    'Settings',
    'POWER_OPERATIONS',
    'PropertyWatch',
    'WatchState',
    'PowerTaskOutcome',
    'VMPowerState',
]
