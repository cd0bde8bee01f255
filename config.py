import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Authoritative coupon backend (validation, recommendation, catalog, orders)
COUPON_API_URL = os.getenv("COUPON_API_URL", "http://localhost:3000")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30"))

ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")
FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", "http://127.0.0.1:5500")

# Firebase service account + realtime database used for session storage
FIREBASE_CRED_PATH = os.getenv("FIREBASE_CRED_JSON", "./firebase-adminsdk.json")
FIREBASE_DB_URL = os.getenv("FIREBASE_DB_URL", "")

# Checkout
DELIVERY_CHARGE = float(os.getenv("DELIVERY_CHARGE", "50"))
DEFAULT_PAYMENT_METHOD = os.getenv("DEFAULT_PAYMENT_METHOD", "card")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CATEGORIES = ["electronics", "sports", "groceries", "books", "beauty", "fashion"]
PAYMENT_METHODS = ["card", "upi", "wallet", "netbanking", "cod"]

# Live sessions idle longer than this are dropped from memory; auth survives in Firebase
SESSION_IDLE_SECONDS = float(os.getenv("SESSION_IDLE_SECONDS", "3600"))
