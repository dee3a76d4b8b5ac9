"""vCenter client functionality mixins"""

from .inventory import InventoryMixin
from .watch import WatchMixin
from .power_ops import PowerOpsMixin

__all__ = ['InventoryMixin', 'WatchMixin', 'PowerOpsMixin']
