"""
IMS Django Settings
===================
Environment-driven settings for the asset custody and workflow engine.

Every deployment knob is read from an ``IMS_*`` environment variable so the
same module serves development, CI and production.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.environ.get('IMS_SECRET_KEY', 'dev-secret-key-DO-NOT-USE-IN-PRODUCTION')
DEBUG = env_bool('IMS_DEBUG', True)
ALLOWED_HOSTS = [h for h in os.environ.get('IMS_ALLOWED_HOSTS', '*').split(',') if h]


# ============================================================================
# APPLICATIONS
# ============================================================================

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    'core.apps.CoreConfig',
    'users.apps.UsersConfig',
    'assets.apps.AssetsConfig',
    'inventory.apps.InventoryConfig',
    'procurement.apps.ProcurementConfig',
    'loans.apps.LoansConfig',
    'notifications.apps.NotificationsConfig',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'ims.urls'
WSGI_APPLICATION = 'ims.wsgi.application'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

AUTH_USER_MODEL = 'users.User'
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# ============================================================================
# DATABASE
# ============================================================================

DATABASES = {
    'default': {
        'ENGINE': os.environ.get('IMS_DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.environ.get('IMS_DB_NAME', str(BASE_DIR / 'ims.sqlite3')),
        'USER': os.environ.get('IMS_DB_USER', ''),
        'PASSWORD': os.environ.get('IMS_DB_PASSWORD', ''),
        'HOST': os.environ.get('IMS_DB_HOST', ''),
        'PORT': os.environ.get('IMS_DB_PORT', ''),
        'ATOMIC_REQUESTS': False,
    }
}


# ============================================================================
# INTERNATIONALIZATION
# ============================================================================

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.environ.get('IMS_TIME_ZONE', 'Asia/Jakarta')
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'


# ============================================================================
# ENGINE SETTINGS
# ============================================================================

IMS = {
    # Location assets are returned to once a return is accepted
    'STORAGE_LOCATION': os.environ.get('IMS_STORAGE_LOCATION', 'Gudang'),
    # Minimum digits of the sequence part of a document number
    'NUMBER_PADDING': int(os.environ.get('IMS_NUMBER_PADDING', '3')),
}


# ============================================================================
# LOGGING
# ============================================================================

LOG_LEVEL = os.environ.get('IMS_LOG_LEVEL', 'INFO').upper()

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
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
        'level': 'WARNING',
    },
    'loggers': {
        app: {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False}
        for app in ('core', 'assets', 'inventory', 'procurement', 'loans', 'notifications')
    },
}
