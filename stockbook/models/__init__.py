"""ORM models. Importing this package registers every table on ``Base.metadata``."""

from .category import Category
from .client import Client
from .commission import Commission
from .product import Product

__all__ = ["Category", "Client", "Commission", "Product"]
