import os
from pathlib import Path
from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent.parent.parent
load_dotenv(ROOT_DIR / '.env')

# App Version
APP_VERSION = "1.0.0"
APP_NAME = "Storefront"

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'storefront')

# JWT session tokens
JWT_SECRET = os.environ.get('JWT_SECRET', 'your-super-secret-jwt-key-change-in-production')
JWT_ALGORITHM = "HS256"
JWT_EXPIRATION_HOURS = int(os.environ.get('JWT_EXPIRATION_HOURS', '24'))
SESSION_COOKIE_NAME = os.environ.get('SESSION_COOKIE_NAME', 'session_token')
COOKIE_SECURE = os.environ.get('COOKIE_SECURE', 'false').lower() == 'true'

# Stripe
STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY', '')
STRIPE_API_URL = os.environ.get('STRIPE_API_URL', 'https://api.stripe.com/v1')
SUPPORTED_CURRENCIES = ["USD", "EUR", "GBP"]

# HTTP
CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

# Catalog / orders
DEFAULT_LOW_STOCK_THRESHOLD = 10
ADMIN_PAGE_SIZE = 10
ESTIMATED_DELIVERY_DAYS = 7
MIN_PASSWORD_LENGTH = 8

ROLES = ["admin", "customer"]
USER_STATUSES = ["active", "inactive", "blocked"]
ORDER_STATUSES = ["pending", "processing", "completed", "cancelled"]
REVIEW_STATUSES = ["pending", "approved", "rejected"]
