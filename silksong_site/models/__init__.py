# Import every model so Base.metadata knows all tables before create_all()
from .subscription import Subscription
from .unsubscription_log import UnsubscriptionLog

__all__ = [
    "Subscription",
    "UnsubscriptionLog",
]
