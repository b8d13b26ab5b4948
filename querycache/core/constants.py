"""Core constants: cache key structure, TTLs, batch sizes, retry defaults.

Single source of truth for literal values shared by the cache and
persistence layers.
"""

# Delimiter for composite keys and namespace prefixes
CACHE_KEY_SEP = ":"

# Prefix for keys derived from statements with no extractable table
CACHE_PREFIX_QUERY = "query"

# Parameter-hash stand-in when a statement has no parameters
CACHE_KEY_ALL = "all"

# Width of the hex digests embedded in generated keys
KEY_HASH_LENGTH = 8

# Auto strategy switches from detailed to simple keys above this many parameters
DETAILED_KEY_MAX_PARAMS = 3

# Default time-to-live for cached results, in seconds
DEFAULT_CACHE_TTL = 40000

# SCAN page size and DEL batch size for prefix invalidation
SCAN_COUNT = 100
DELETE_BATCH_SIZE = 100

# Backing-store retry defaults (seconds)
DEFAULT_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0

# Pagination and bulk insert defaults
DEFAULT_PAGE_SIZE = 30
DEFAULT_BULK_CHUNK_SIZE = 1000

# Transient backing-store error codes (the only ones retried)
TRANSIENT_ERROR_CODES = frozenset(
    {
        "ECONNREFUSED",
        "ETIMEDOUT",
        "ENOTFOUND",
        "PROTOCOL_CONNECTION_LOST",
        "ER_CON_COUNT_ERROR",
    }
)

# MySQL client/server error numbers mapped onto the codes above
MYSQL_ERROR_CODES = {
    1040: "ER_CON_COUNT_ERROR",
    2003: "ECONNREFUSED",
    2005: "ENOTFOUND",
    2006: "PROTOCOL_CONNECTION_LOST",
    2013: "PROTOCOL_CONNECTION_LOST",
}
