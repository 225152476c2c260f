"""
giftstrack/utils/constants.py

Purpose: Centralized static content

- Storage keys shared by the persistent stores
- API endpoint paths
- User-facing messages

(Prevents hardcoding across the codebase)
"""

# ============================================================
# STORAGE KEYS
# ============================================================

AUTH_TOKEN_KEY = "auth_token"
USER_DATA_KEY = "user_data"
USER_ROLE_KEY = "user_role"
MASTER_DATA_CACHE_KEY = "master_data_cache"
CUSTOMER_LIST_CACHE_PREFIX = "cache:customers"

# Cleared from the secure store on logout
SENSITIVE_KEYS = [
    AUTH_TOKEN_KEY,
    USER_DATA_KEY,
    USER_ROLE_KEY,
]

# Survive logout in the general store
PERSISTENT_KEYS = [
    "theme_preference",
    "language_preference",
    "onboarding_complete",
]

# ============================================================
# API ENDPOINTS
# ============================================================

AUTH_LOGIN = "/api/auth/login"
AUTH_LOGOUT = "/api/auth/logout"
AUTH_VERIFY = "/api/auth/verify"
AUTH_REFRESH = "/api/auth/refresh"

MASTER_STATES = "/api/master/states"
MASTER_DISTRICTS = "/api/master/districts"
MASTER_CITIES = "/api/master/cities"
MASTER_EVENT_TYPES = "/api/master/event-types"
MASTER_GIFT_TYPES = "/api/master/gift-types"
MASTER_INVITATION_STATUS = "/api/master/invitation-status"
MASTER_CARE_OF_OPTIONS = "/api/master/care-of-options"

CUSTOMERS = "/api/customers"

# ============================================================
# MESSAGES
# ============================================================

OFFLINE_NO_CACHE_MESSAGE = "You are offline and no cached data is available"
MASTER_DATA_FAILED_MESSAGE = "Failed to load master data"
INVALID_LOGIN_RESPONSE_MESSAGE = "Invalid authentication response from server"
LOGIN_FAILED_MESSAGE = "Login failed"
