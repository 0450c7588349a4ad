"""
Finance Config Module

Platform money policy shared by the reconciliation scripts and the API.

PLATFORM_FEE_PERCENTAGE must stay numerically identical to the fee used by
the live fare settlement in the mobile app (src/config/financeConfig.ts).
"""

# Platform commission taken from every finished ride (20%)
PLATFORM_FEE_PERCENTAGE = 0.20

# Stored vs computed differences below one cent are float noise
MISMATCH_EPSILON = 0.009

# Firestore collections
USERS_COLLECTION = "users"
RIDES_COLLECTION = "rides"
TRANSACTIONS_COLLECTION = "transactions"

# Ride / profile markers
FINALIZED_STATUS = "finalizada"
DRIVER_ROLE = "motorista"
DRIVER_ROLE_FIELD = "perfil"
DRIVER_REGISTERED_FLAG = "motoristaData.isRegistered"

PAYMENT_DIGITAL = "digital"
PAYMENT_CASH = "cash"
