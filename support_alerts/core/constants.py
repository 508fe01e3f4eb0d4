"""Fixed escalation and report policies."""

# Assigned tickets are overdue after this many hours without a staff reply.
# Fixed for every mailbox, unlike the VIP threshold.
ASSIGNED_RESPONSE_THRESHOLD_HOURS = 24

# Alerts itemize at most this many tickets; the rest are summarized as "(and N more)".
ALERT_ITEM_LIMIT = 10

DAILY_REPORT_WINDOW_HOURS = 24

# Customer values are stored in minor units (cents); thresholds are whole units.
CUSTOMER_VALUE_SCALE = 100

NO_SUBJECT = "No subject"
UNKNOWN_NAME = "Unknown"
UNKNOWN_CUSTOMER = "Unknown Customer"
