from decimal import Decimal

from decouple import config

DEFAULT_CURRENCY = config("DEFAULT_CURRENCY", default="brl")
PLATFORM_FEE_PERCENT = config("PLATFORM_FEE_PERCENT", cast=Decimal, default="10")
# Smallest price, in minor units, an organizer may set for an event or a membership
MIN_PRICE_CENTS = config("MIN_PRICE_CENTS", cast=int, default=100)
STRIPE_SECRET_KEY = config("STRIPE_SECRET_KEY", default="sk_test_...")
STRIPE_PUBLISHABLE_KEY = config("STRIPE_PUBLISHABLE_KEY", default="pk_test_...")
STRIPE_WEBHOOK_SECRET = config("STRIPE_WEBHOOK_SECRET", default="whsec_...")
STRIPE_CONNECT_COUNTRY = config("STRIPE_CONNECT_COUNTRY", default="BR")
# The platform's own account; organizers charging through it pay no application fee
STRIPE_ACCOUNT = config("STRIPE_ACCOUNT", default=None)
