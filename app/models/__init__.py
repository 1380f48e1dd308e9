from app.models.user import User  # noqa: F401
from app.models.shipment import Shipment  # noqa: F401
from app.models.price_history import PriceHistoryEntry  # noqa: F401
from app.models.transaction import BalanceTransaction  # noqa: F401
from app.models.system_setting import SystemSetting  # noqa: F401
from app.models.insurance_range import InsuranceRange  # noqa: F401
from app.models.duty_rate_override import DutyRateOverride  # noqa: F401
from app.models.enums import (  # noqa: F401
    PriceState,
    ServiceLevel,
    ShipmentStatus,
    ShippingTerms,
    TransactionType,
    UserRole,
)
