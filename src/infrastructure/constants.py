"""Infrastructure-related constants, particularly for the backing store."""

# Store connection constants
POOL_RECYCLE_SECONDS = 3600  # 1 hour
PING_STATEMENT = "SELECT 1"
SUPERVISOR_TASK_NAME = "store-connection-supervisor"
