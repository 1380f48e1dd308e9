from __future__ import annotations

from enum import Enum


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class ShipmentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"


class ServiceLevel(str, Enum):
    ECO = "eco"
    STANDARD = "standard"
    EXPRESS = "express"


class ShippingTerms(str, Enum):
    DAP = "dap"
    DDP = "ddp"


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    PURCHASE = "purchase"
    REFUND = "refund"


class PriceState(str, Enum):
    NO_PRICE = "no_price"
    RECALCULATING = "recalculating"
    CURRENT = "current"
    FAILED = "failed"
