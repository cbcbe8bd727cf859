"""Shared constants for the trade tracker."""

import re

# Telegram rejects callback data longer than 64 bytes
MAX_CALLBACK_DATA_LENGTH = 64

# Callback data prefixes, "<prefix>:<payload>"
CB_ACTION = "action"
CB_EXCHANGE = "exchange"
CB_DIRECTION = "direction"
CB_EDIT = "edit"
CB_CLOSE = "close"

# Upper-cased ticker, short enough that "close:<trade_id>" stays under the callback limit
TICKER_PATTERN = re.compile(r"^[A-Z0-9][A-Z0-9/._-]{0,19}$")

# Quote assets tried, in order, when splitting a compact ticker such as BTCUSDT
QUOTE_ASSETS = ("USDT", "USDC", "FDUSD", "BUSD", "TUSD", "USD", "EUR", "BTC", "ETH")

# Edit menu layout
BUTTONS_PER_ROW = 5
