from pathlib import Path
import os
BASE_DIR = Path(__file__).resolve().parent.parent
from dotenv import load_dotenv
load_dotenv()
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-riskit-local-only")

DEBUG = os.getenv("DEBUG", "false").lower() == "true"

ALLOWED_HOSTS = [h for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h]


# Application definition

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'channels',
    'rest_framework',
    'corsheaders',
    'chain',
    'crash',
]


MIDDLEWARE = [
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'riskit.urls'

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

ASGI_APPLICATION = 'riskit.asgi.application'

# Channels + Redis
REDIS_URL = os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0")
CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels_redis.core.RedisChannelLayer",
        "CONFIG": {
            "hosts": [REDIS_URL],
        },
    },
}

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.getenv("SQLITE_PATH", BASE_DIR / 'db.sqlite3'),
    }
}


# Crash engine timing and protocol.
# The timing values below are part of the public protocol: clients render
# countdowns from them and verifiers replay ticks at TICK_INTERVAL_MS.
CRASH_ENGINE = {
    "PROTOCOL_VERSION": int(os.getenv("CRASH_PROTOCOL_VERSION", "2")),
    "BETTING_DURATION_MS": 20_000,
    "PREPARED_DELAY_MS": 5_000,
    "TICK_INTERVAL_MS": 100,
    "REVEAL_DELAY": 2.0,              # seconds after crash before revealing
    "NEXT_ROUND_DELAY": 2.0,
    "ROUND_RETRY_DELAY": float(os.getenv("CRASH_ROUND_RETRY_DELAY", "5")),
    "ENTROPY_RETRY_DELAY": float(os.getenv("CRASH_ENTROPY_RETRY_DELAY", "3")),
    "ENTROPY_POLL_INTERVAL": float(os.getenv("CRASH_ENTROPY_POLL_INTERVAL", "3")),
    "ENTROPY_MAX_WAIT": float(os.getenv("CRASH_ENTROPY_MAX_WAIT", "120")),
    "BLOCK_POLL_INTERVAL": 1.0,
    "CASHOUT_BATCH_SIZE": 15,
    "LOCK_TTL": int(os.getenv("CRASH_ENGINE_LOCK_TTL", "30")),
    "LOCK_HEARTBEAT": float(os.getenv("CRASH_ENGINE_LOCK_HEARTBEAT", "10")),
}

CHAIN_NETWORKS = {
    "monad-testnet": {
        "CHAIN_ID": 10143,
        "RPC_URL": "https://testnet-rpc.monad.xyz",
        "ENTROPY_ADDRESS": "0x825c0390f379c631f3cf11a82a37d20bddf93c07",
        "BLOCK_EXPLORER": "https://testnet.monadexplorer.com",
        "REVEAL_DELAY_BLOCKS": 2,
    },
    "monad-mainnet": {
        "CHAIN_ID": 143,
        "RPC_URL": "https://rpc.monad.xyz",
        "ENTROPY_ADDRESS": os.getenv("ENTROPY_ADDRESS", ""),
        "BLOCK_EXPLORER": "https://monadexplorer.com",
        "REVEAL_DELAY_BLOCKS": 2,
    },
}

CHAIN_NETWORK = os.getenv("NETWORK", "monad-testnet")
_network = CHAIN_NETWORKS.get(CHAIN_NETWORK, CHAIN_NETWORKS["monad-testnet"])

CHAIN = {
    "NETWORK": CHAIN_NETWORK,
    "CHAIN_ID": int(os.getenv("CHAIN_ID", _network["CHAIN_ID"])),
    "RPC_URL": os.getenv("RPC_URL", _network["RPC_URL"]),
    "ENTROPY_ADDRESS": os.getenv("ENTROPY_ADDRESS", _network["ENTROPY_ADDRESS"]),
    "BLOCK_EXPLORER": _network["BLOCK_EXPLORER"],
    "REVEAL_DELAY_BLOCKS": _network["REVEAL_DELAY_BLOCKS"],
    "CONTRACT_ADDRESS": os.getenv("CRASH_GAME_CONTRACT"),
    "PRIVATE_KEY": os.getenv("DEPLOYER_PK"),
    "TX_TIMEOUT": int(os.getenv("CHAIN_TX_TIMEOUT", "120")),
    "RPC_TIMEOUT": int(os.getenv("CHAIN_RPC_TIMEOUT", "30")),
    "RPC_MAX_RETRIES": int(os.getenv("CHAIN_RPC_MAX_RETRIES", "3")),
}


CORS_ALLOW_CREDENTIALS = True

CORS_ALLOWED_ORIGINS = [o for o in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:5173").split(",") if o]

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.AllowAny',
    ],
    'UNAUTHENTICATED_USER': None,
}

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "engine": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "engine",
        },
    },
    "loggers": {
        "crash": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "chain": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}


# Internationalization
# https://docs.djangoproject.com/en/5.2/topics/i18n/

LANGUAGE_CODE = 'en-us'

TIME_ZONE = 'UTC'

USE_I18N = True

USE_TZ = True


# Static files (CSS, JavaScript, Images)
# https://docs.djangoproject.com/en/5.2/howto/static-files/

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / "staticfiles"
# Default primary key field type
# https://docs.djangoproject.com/en/5.2/ref/settings/#default-auto-field

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
