from pathlib import Path
import os
import environ
from urllib.parse import urlparse
from datetime import timedelta

# Base
BASE_DIR = Path(__file__).resolve().parent.parent
env = environ.Env()
environ.Env.read_env(os.path.join(BASE_DIR, ".env"))

# Frontend origin (CORS/CSRF + URL de vérification imprimée dans le QR)
FRONT_BASE_URL = env.str("FRONT_BASE_URL", default="http://localhost:3000")
_front_origin = None
if FRONT_BASE_URL:
    p = urlparse(FRONT_BASE_URL)
    _front_origin = f"{p.scheme}://{p.netloc}"

# Sécurité / mode
SECRET_KEY = env("DJANGO_SECRET_KEY", default="dev-insecure-scn-attestations")
DEBUG = env.bool("DJANGO_DEBUG", default=True)

ALLOWED_HOSTS = env.list("DJANGO_ALLOWED_HOSTS", default=["localhost", "127.0.0.1", "testserver"])

# Apps
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "corsheaders",
    "attestations",
    "rest_framework_simplejwt",
    "rest_framework_simplejwt.token_blacklist",
]

AUTH_USER_MODEL = "attestations.User"

# Middlewares
MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "attestations.middleware.AllowIframeForPDFOnlyMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "attestations.middleware.ClearAuthCookiesMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "scn.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "scn.wsgi.application"

# DRF & Auth
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "attestations.authentication.CookieJWTAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": ("rest_framework.permissions.IsAuthenticated",),
    "EXCEPTION_HANDLER": "attestations.exceptions.scn_exception_handler",
    "DEFAULT_THROTTLE_CLASSES": [
        "rest_framework.throttling.AnonRateThrottle",
        "rest_framework.throttling.UserRateThrottle",
        "rest_framework.throttling.ScopedRateThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "anon": "60/minute",
        "user": "120/minute",
        "login": "7/minute",
        "verification": "30/minute",
        "signature-pin": "10/minute",
    },
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(hours=1),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=7),
    "ROTATE_REFRESH_TOKENS": True,
    "BLACKLIST_AFTER_ROTATION": True,
}

# DB (PostgreSQL en production, SQLite en local)
DATABASES = {
    "default": env.db("DATABASE_URL", default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
}

# Cache : défis de signature, OTP, enrôlements TOTP
CACHES = {
    "default": env.cache("CACHE_URL", default="locmemcache://"),
}

# CORS commun
CORS_ALLOW_ALL_ORIGINS = False
CORS_ALLOW_CREDENTIALS = True
CORS_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
]

if _front_origin and _front_origin not in CORS_ALLOWED_ORIGINS:
    CORS_ALLOWED_ORIGINS.append(_front_origin)

# ---- Cookies / CSRF par environnement ----

if DEBUG:
    SESSION_COOKIE_SECURE = False
    CSRF_COOKIE_SECURE = False
    SESSION_COOKIE_SAMESITE = "Lax"
    CSRF_COOKIE_SAMESITE = "Lax"

    CSRF_TRUSTED_ORIGINS = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]
else:
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True
    SESSION_COOKIE_SAMESITE = "None"
    CSRF_COOKIE_SAMESITE = "None"

    CSRF_TRUSTED_ORIGINS = []
    if _front_origin:
        CSRF_TRUSTED_ORIGINS.append(_front_origin)

# Static & media
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"
MEDIA_URL = "/media/"
MEDIA_ROOT = BASE_DIR / "media"

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage"},
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Internationalisation
LANGUAGE_CODE = "fr"
TIME_ZONE = env.str("TIME_ZONE", default="Africa/Niamey")
USE_I18N = True
USE_TZ = True

# Mail
APP_NAME = "Attestations SCN"
EMAIL_BACKEND = env.str("EMAIL_BACKEND", default="django.core.mail.backends.smtp.EmailBackend")
EMAIL_HOST = env.str("EMAIL_HOST", default="smtp.gmail.com")
EMAIL_PORT = env.int("EMAIL_PORT", default=587)
EMAIL_USE_TLS = env.bool("EMAIL_USE_TLS", default=True)
EMAIL_HOST_USER = env.str("EMAIL_HOST_USER", default="")
EMAIL_HOST_PASSWORD = env.str("EMAIL_HOST_PASSWORD", default="")
DEFAULT_FROM_EMAIL = env.str("DEFAULT_FROM_EMAIL", default=EMAIL_HOST_USER or "noreply@scn.ne")

# QR / vérification publique
QR_SECRET_KEY = env.str("QR_SECRET_KEY", default=SECRET_KEY)
QR_MAX_AGE_SECONDS = env.int("QR_MAX_AGE_SECONDS", default=10 * 365 * 24 * 3600)
QR_CLOCK_SKEW_SECONDS = 300

# Numérotation
NUMBERING_MAX_RETRIES = 3
NUMBERING_RETRY_BACKOFF = 0.05

# Rendu PDF
ATTESTATION_LOCALE = "fr"
ATTESTATION_DIRECTEUR_NOM = env.str(
    "ATTESTATION_DIRECTEUR_NOM", default="Le Directeur du Service Civique National"
)
ATTESTATION_LIEU = env.str("ATTESTATION_LIEU", default="Niamey")

# OTP / 2FA / PIN
OTP_TTL_SECONDS = env.int("OTP_TTL_SECONDS", default=300)
MAX_OTP_ATTEMPTS = env.int("MAX_OTP_ATTEMPTS", default=3)
SIGNATURE_MAX_PIN_ATTEMPTS = env.int("SIGNATURE_MAX_PIN_ATTEMPTS", default=4)
SIGNATURE_PIN_WINDOW_SECONDS = env.int("SIGNATURE_PIN_WINDOW_SECONDS", default=900)
SIGNATURE_LOCKOUT_SECONDS = env.int("SIGNATURE_LOCKOUT_SECONDS", default=1800)
SIGNATURE_CHALLENGE_TTL_SECONDS = env.int("SIGNATURE_CHALLENGE_TTL_SECONDS", default=300)
TOTP_ISSUER = env.str("TOTP_ISSUER", default="Attestations SCN")
TOTP_ENROLLMENT_TTL_SECONDS = 600
TOTP_BACKUP_CODES = 10
TOTP_ENCRYPTION_KEY = env.str("TOTP_ENCRYPTION_KEY", default="")

SIGNATURE_FRAME_ANCESTORS = env.str("SIGNATURE_FRAME_ANCESTORS", "'self'")
SIGNATURE_X_FRAME_OPTIONS = env.str("SIGNATURE_X_FRAME_OPTIONS", "SAMEORIGIN")

# Celery : sans broker, les tâches s'exécutent dans le processus
CELERY_BROKER_URL = env.str("CELERY_BROKER_URL", default="")
CELERY_TASK_ALWAYS_EAGER = not CELERY_BROKER_URL
CELERY_TASK_EAGER_PROPAGATES = False

# Logs
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
    },
    "handlers": {"console": {"class": "logging.StreamHandler", "formatter": "simple"}},
    "root": {"handlers": ["console"], "level": "INFO"},
    "loggers": {
        "attestations": {"level": env.str("ATTESTATIONS_LOG_LEVEL", default="INFO")},
        "attestations.alerts": {"level": "WARNING"},
    },
}
