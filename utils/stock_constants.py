# Outbound ledger movements that represent material consumption
CONSUMPTION_CODES = (
    'ALKANSYA_CONSUMPTION',
    'ORDER_FULFILLMENT',
    'PRODUCTION_USAGE',
    'CONSUMPTION',
    'ORDER_CONSUMPTION',
)

# Order statuses that count as accepted demand
ACCEPTED_ORDER_STATUSES = ('accepted', 'processing', 'completed', 'delivered')

STOCKED_CATEGORY = 'stocked'
MADE_TO_ORDER_CATEGORY = 'made_to_order'

# Stock level sync looks back this many days for consumption
STOCK_LEVEL_LOOKBACK_DAYS = 30
