# Import all models so Base.metadata is complete wherever models are loaded.
from dinecore.models.audit_log import AuditLog  # noqa: F401
from dinecore.models.booking import Booking  # noqa: F401
from dinecore.models.cart_line import CartLine  # noqa: F401
from dinecore.models.menu_item import MenuItem  # noqa: F401
from dinecore.models.offer import Offer  # noqa: F401
from dinecore.models.order import Order  # noqa: F401
from dinecore.models.restaurant import Restaurant  # noqa: F401
from dinecore.models.restaurant_timing import RestaurantTiming  # noqa: F401
from dinecore.models.slot_lock import SlotLock  # noqa: F401
from dinecore.models.table import Table  # noqa: F401
