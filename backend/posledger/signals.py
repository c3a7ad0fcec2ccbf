"""
State-change notifications.

Services publish here after a successful commit; UI adapters, the sync
processor and tests subscribe. Receivers get the sending service as sender and
the affected record(s) as keyword arguments.
"""

from blinker import Namespace

_signals = Namespace()

# cart=Cart | None, action=str
cart_changed = _signals.signal("cart-changed")

# transaction=SaleTransaction
transaction_completed = _signals.signal("transaction-completed")

# shift=Shift, action=str ("open", "accrue", "cash_movement", "x_report", "close")
shift_changed = _signals.signal("shift-changed")

# record=InventoryAdjustment | CashMovement, action=str ("submitted", "approved", "rejected")
approval_changed = _signals.signal("approval-changed")

# result=SyncPassResult
sync_pass_finished = _signals.signal("sync-pass-finished")

# online=bool
connectivity_changed = _signals.signal("connectivity-changed")
