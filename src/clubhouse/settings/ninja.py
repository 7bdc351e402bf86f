from datetime import timedelta

from decouple import config

from .base import SECRET_KEY

# Tokens are issued by the external identity provider; this service only verifies them.
JWT_ALGORITHM = config("JWT_ALGORITHM", default="HS256")
JWT_SIGNING_KEY = config("JWT_SIGNING_KEY", default=SECRET_KEY)
JWT_VERIFYING_KEY = config("JWT_VERIFYING_KEY", default=None)
JWT_AUDIENCE = config("JWT_AUDIENCE", default=None)
JWT_ISSUER = config("JWT_ISSUER", default=None)
JWT_JWK_URL = config("JWT_JWK_URL", default=None)

NINJA_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(hours=config("ACCESS_TOKEN_LIFETIME_HOURS", default=1, cast=int)),
    "ALGORITHM": JWT_ALGORITHM,
    "SIGNING_KEY": JWT_SIGNING_KEY,
    "VERIFYING_KEY": JWT_VERIFYING_KEY,
    "AUDIENCE": JWT_AUDIENCE,
    "ISSUER": JWT_ISSUER,
    "JWK_URL": JWT_JWK_URL,
    "LEEWAY": config("JWT_LEEWAY_SECONDS", default=30, cast=int),
    # The subject claim carries the provider's user id
    "USER_ID_FIELD": "external_id",
    "USER_ID_CLAIM": "sub",
    "AUTH_TOKEN_CLASSES": ("ninja_jwt.tokens.UntypedToken",),
}


NINJA_EXTRA = {
    "THROTTLE_RATES": {
        "user": "1000/day",
        "anon": "250/day",
    },
    "NUM_PROXIES": None,
}
