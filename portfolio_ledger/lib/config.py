"""Application configuration constants."""

from datetime import date

# Persisted cache
CACHE_TTL_SECONDS = 300  # 5 minutes
CACHE_MAX_ENTRY_BYTES = 2 * 1024 * 1024  # 2 MiB per entry, stays under the storage quota
CACHE_KEY_PREFIX = "portfolio_"  # every namespaced key starts with this
CACHE_SECTIONS = ("holdings", "transactions", "aggregates")
LAST_USER_KEY = "last_user_id"

# Transaction input bounds
MIN_TRANSACTION_DATE = date(2000, 1, 1)
MAX_QUANTITY = 1_000_000  # units per buy/sell
MAX_PRICE = 10_000_000  # per unit, or flat amount for income/balance entries
MAX_AMOUNT = 1_000_000_000  # quantity x price
MAX_INTEREST_RATE = 100  # percent per annum
DECIMAL_PLACES = 8  # scale of the Numeric(20, 8) quantity, price and amount columns

# Free text
MAX_TEXT_LENGTH = 500
NAME_MIN_LENGTH = 2
SYMBOL_MIN_LENGTH = 2
SYMBOL_MAX_LENGTH = 20
SYMBOL_PATTERN = r"^[A-Za-z0-9.-]+$"
USER_ID_PATTERN = r"^[A-Za-z0-9_-]+$"

# Store
TRANSACTION_FETCH_LIMIT = 10_000  # hard cap for a single unbounded fetch
MAX_BATCH_SIZE = 500  # operations staged in one atomic commit

# Pagination
PAGE_SIZE_OPTIONS = (10, 25, 50)
DEFAULT_PAGE_SIZE = 10

# Gold interest accrual
DAYS_PER_YEAR = 365
