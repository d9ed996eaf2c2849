from .values import NULL, Composite, Null, Scalar, Value, to_value
from .registry import ManagedObject, Notification, ObjectName
from .queries import AttributePath, Query, Subscription

__all__ = [
    "NULL", "Composite", "Null", "Scalar", "Value", "to_value",
    "ManagedObject", "Notification", "ObjectName",
    "AttributePath", "Query", "Subscription",
]
