"""
Staging settings.

Same as production settings but with console-only, INFO-level logging for the
fulfillment dispatcher and provider adapters so every claim and provider call
shows up in the container log.
"""

from .settings import *  # noqa: F401,F403

DEBUG = False
ALLOWED_HOSTS = ['*']  # Configure appropriately for staging

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'apps.orders.dispatcher': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'apps.orders.reconciler': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'apps.providers.adapters': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}
