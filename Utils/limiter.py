from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from Utils.config import get_env

# Bound to the app in create_app(); routes decorate with it at import time
limiter = Limiter(
    get_remote_address,
    default_limits=[
        get_env("LIMIT_DEFAULT_HOURLY", "200 per hour"),
        get_env("LIMIT_DEFAULT_SECONDLY", "10 per second"),
    ],
)


def checkout_limit() -> str:
    return get_env("CHECKOUT_RATE_LIMIT", "10 per minute")
