from enum import Enum

class SubscriptionStatus(str, Enum):
    free = "free"
    active = "active"
    expired = "expired"
    canceled = "canceled"

class Plan(str, Enum):
    pro_monthly = "pro_monthly"
    pro_annual = "pro_annual"
    pro_lifetime = "pro_lifetime"

class ProductSource(str, Enum):
    cache = "cache"
    openlibrary = "openlibrary"
    googlebooks = "googlebooks"
    openfoodfacts = "openfoodfacts"
    upcitemdb = "upcitemdb"
