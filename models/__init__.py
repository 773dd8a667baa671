# Import models so that SQLAlchemy metadata includes them on app startup
from .shop import Shop  # noqa: F401
from .user import User  # noqa: F401
from .category import Category  # noqa: F401
from .product import Product, ProductVariant  # noqa: F401
from .discount import Discount  # noqa: F401
from .discount_code import DiscountCode  # noqa: F401
from .order import Order  # noqa: F401
from .order_item import OrderItem  # noqa: F401
from .system_limit import SystemLimit  # noqa: F401
from .notification import Notification  # noqa: F401
