from .base import *  # noqa: F401,F403
from .celery import *  # noqa: F401,F403
from .ninja import *  # noqa: F401,F403
from .observability import *  # noqa: F401,F403
from .stripe import *  # noqa: F401,F403
