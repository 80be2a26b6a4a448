# apps/orders/signals.py
from django.dispatch import Signal

# Fired after the checkout transaction commits
# args: order
order_created = Signal()

# Fired after a status change commits
# args: order, old_status, new_status
order_status_changed = Signal()
