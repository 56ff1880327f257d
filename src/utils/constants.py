"""
Constants for the Gig Orders engine.

This module defines all system-wide constants including:
- Application metadata
- Escrow settlement rates and money precision
- Order number format
- Validation limits
"""

from decimal import Decimal

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Gig Orders"
APP_VERSION = "0.1.0"
DATABASE_FILENAME = "gig_orders.db"

# ============================================================================
# Escrow Settlement
# ============================================================================

# Fixed platform commission taken from every order total
PLATFORM_FEE_RATE = Decimal("0.15")

# Money is stored and rounded to whole cents
MONEY_QUANTUM = Decimal("0.01")

# ============================================================================
# Order Numbers
# ============================================================================

ORDER_NUMBER_PREFIX = "ORD"
ORDER_NUMBER_SUFFIX_LENGTH = 6
ORDER_NUMBER_MAX_ATTEMPTS = 5

# ============================================================================
# Validation Limits
# ============================================================================

MAX_TITLE_LENGTH = 200
MAX_MESSAGE_LENGTH = 5000
MAX_REASON_LENGTH = 1000
MAX_ATTACHMENTS = 20

# Admin cancellation reasons are stored with this prefix
ADMIN_CANCELLATION_PREFIX = "Admin Cancelled: "
