from __future__ import annotations

from alembic import op

revision = "0002_seed_settings"
down_revision = "0001_initial"
branch_labels = None
depends_on = None

SETTINGS = [
    ("DEFAULT_PRICE_MULTIPLIER", "1.45"),
    ("MIN_BALANCE", "0"),
]

# Declared value bands in cents -> insurance cost in cents.
INSURANCE_RANGES = [
    (1, 10000, 300),
    (10001, 50000, 900),
    (50001, 100000, 1800),
    (100001, 500000, 4500),
]


def upgrade() -> None:
    values = ", ".join("('%s', '%s')" % (key, value) for key, value in SETTINGS)
    op.execute("INSERT INTO system_settings (key, value) VALUES " + values)

    ranges = ", ".join(
        "(gen_random_uuid(), %d, %d, %d)" % (low, high, cost) for low, high, cost in INSURANCE_RANGES
    )
    op.execute("INSERT INTO insurance_ranges (id, min_value, max_value, insurance_cost) VALUES " + ranges)


def downgrade() -> None:
    op.execute("DELETE FROM insurance_ranges")
    keys = ", ".join("'%s'" % key for key, _ in SETTINGS)
    op.execute("DELETE FROM system_settings WHERE key IN (%s)" % keys)
