"""
Django settings for NoteChat backend.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-dev-key-change-in-production')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'False').lower() in ('true', '1', 'yes')

ALLOWED_HOSTS = [
    h.strip() for h in os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',')
]

# Application definition
INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'apps.docs',
    'apps.indexing',
    'apps.rag',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = []

ASGI_APPLICATION = 'config.asgi.application'

# Database
# Using environment variable for database URL
DATABASE_URL = os.getenv('DATABASE_URL', '')
USING_POSTGRES = False
if DATABASE_URL:
    import re
    match = re.match(
        r'postgres(?:ql)?://(?P<user>[^:]+):(?P<password>[^@]+)@(?P<host>[^:]+):(?P<port>\d+)/(?P<name>.+)',
        DATABASE_URL
    )
    if match:
        USING_POSTGRES = True
        DATABASES = {
            'default': {
                'ENGINE': 'django.db.backends.postgresql',
                'NAME': match.group('name'),
                'USER': match.group('user'),
                'PASSWORD': match.group('password'),
                'HOST': match.group('host'),
                'PORT': match.group('port'),
            }
        }
    else:
        DATABASES = {
            'default': {
                'ENGINE': 'django.db.backends.sqlite3',
                'NAME': BASE_DIR / 'db.sqlite3',
            }
        }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }


# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# =============================================================================
# Chunk storage
# =============================================================================
# "pgvector" keeps embeddings in a native vector column (needs the extension),
# "encoded" keeps them as JSON text and works on any database.
VECTOR_STORE = os.getenv('VECTOR_STORE', 'pgvector' if USING_POSTGRES else 'encoded').lower()

if VECTOR_STORE == 'pgvector':
    INSTALLED_APPS.append('apps.vectors')

# With VECTOR_STORE=pgvector this must equal apps.vectors.VECTOR_DIMENSIONS (checked at startup)
EMBEDDING_DIMENSIONS = int(os.getenv('EMBEDDING_DIMENSIONS', '768'))

# =============================================================================
# Embeddings
# =============================================================================
EMBEDDING_PROVIDER = os.getenv('EMBEDDING_PROVIDER', 'ollama').lower()

OLLAMA_BASE_URL = os.getenv('OLLAMA_BASE_URL', 'http://ollama:11434')
OLLAMA_EMBED_MODEL = os.getenv('OLLAMA_EMBED_MODEL', 'nomic-embed-text')
OLLAMA_CHAT_MODEL = os.getenv('OLLAMA_CHAT_MODEL', 'llama3.2')

GEMINI_API_KEY = os.getenv('GEMINI_API_KEY', '')
GEMINI_EMBED_MODEL = os.getenv('GEMINI_EMBED_MODEL', 'text-embedding-004')

# =============================================================================
# Generation
# =============================================================================
LLM_PROVIDER = os.getenv('LLM_PROVIDER', 'ollama').lower()

# OpenAI-compatible endpoint (OpenAI, Groq, Together, ...)
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY', '')
OPENAI_BASE_URL = os.getenv('OPENAI_BASE_URL', 'https://api.groq.com/openai/v1')
OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'llama-3.1-8b-instant')

LLM_TEMPERATURE = float(os.getenv('LLM_TEMPERATURE', '0.7'))
LLM_MAX_TOKENS = int(os.getenv('LLM_MAX_TOKENS', '2048'))

# Timeouts (in seconds). External calls are attempted once.
HTTP_CONNECT_TIMEOUT = float(os.getenv('HTTP_CONNECT_TIMEOUT', '30'))
EMBED_TIMEOUT = float(os.getenv('EMBED_TIMEOUT', '60'))
GENERATION_TIMEOUT = float(os.getenv('GENERATION_TIMEOUT', '120'))

# =============================================================================
# Chunking and retrieval
# =============================================================================
CHUNK_SIZE_TOKENS = int(os.getenv('CHUNK_SIZE_TOKENS', '250'))
CHUNK_OVERLAP_TOKENS = int(os.getenv('CHUNK_OVERLAP_TOKENS', '40'))

RAG_TOP_K = int(os.getenv('RAG_TOP_K', '5'))
RAG_SIMILARITY_THRESHOLD = float(os.getenv('RAG_SIMILARITY_THRESHOLD', '0.5'))

# =============================================================================
# Indexing worker
# =============================================================================
WORKER_POLL_INTERVAL = float(os.getenv('WORKER_POLL_INTERVAL', '2'))

# =============================================================================
# File Upload Configuration
# =============================================================================
# Root directory for uploaded files
UPLOAD_ROOT = Path(os.getenv('UPLOAD_ROOT', BASE_DIR / 'data' / 'uploads'))

# Maximum file size in bytes (50MB default)
MAX_UPLOAD_SIZE = int(os.getenv('MAX_UPLOAD_SIZE', 50 * 1024 * 1024))

# Allowed MIME types for upload
ALLOWED_CONTENT_TYPES = [
    'application/pdf',
    'text/plain',
    'text/markdown',
    # Some systems use these for markdown
    'text/x-markdown',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
]

# Allowed file extensions (used as secondary check)
ALLOWED_EXTENSIONS = ['.pdf', '.txt', '.md', '.markdown', '.docx']

# =============================================================================
# Logging
# =============================================================================
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
        'apps.indexing': {
            'handlers': ['console'],
            'level': 'DEBUG',
            'propagate': False,
        },
        'apps.rag': {
            'handlers': ['console'],
            'level': 'DEBUG',
            'propagate': False,
        },
    },
}
