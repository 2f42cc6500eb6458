import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

# Security
DEBUG = os.getenv('DEBUG', '0') == '1'
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-key-CHANGE-IN-PRODUCTION')

# Parse ALLOWED_HOSTS from env (comma-separated)
ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', '*').split(',')

# --- 1. APPS ---
INSTALLED_APPS = [
    #Local Apps
    'core',
    'gradebook',
    'academics',
]

# --- 2. DATABASE ---
# The engines work on snapshots handed to them; no database is configured.
DATABASES = {}

# --- 3. GRADEBOOK ---
# See gradebook/config.py for every GRADEBOOK_* setting and its default.
GRADEBOOK_SCORE_SCALE = 20
GRADEBOOK_DISPLAY_DECIMALS = 2
GRADEBOOK_RANKING_DECIMALS = 10
GRADEBOOK_STRICT_INTEGRITY = os.getenv('GRADEBOOK_STRICT_INTEGRITY', '0') == '1'
GRADEBOOK_ATTENDANCE_WEEK_DAYS = 7

# --- 4. LOGGING ---
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
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
        'django': {
            'handlers': ['console'],
            'level': os.getenv('DJANGO_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
        'gradebook': {
            'handlers': ['console'],
            'level': os.getenv('GRADEBOOK_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
        'academics': {
            'handlers': ['console'],
            'level': os.getenv('GRADEBOOK_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}

# --- 5. INTERNATIONALIZATION ---
LANGUAGE_CODE = 'fr'
TIME_ZONE = os.getenv('TIME_ZONE', 'UTC')
USE_I18N = True
USE_TZ = True

# --- 6. DEFAULT PRIMARY KEY ---
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
