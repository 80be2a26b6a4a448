"""
Top-level models import shim for the Orders app.

Lets `from apps.orders.models import Order` work while the models
live in one module per aggregate.
"""

from .order import *          # Order, OrderQuerySet
from .item import *           # OrderItem
from .timeline import *       # OrderTimeline
from .cancellation import *   # OrderCancellation
from .cart import *           # Cart, CartItem
