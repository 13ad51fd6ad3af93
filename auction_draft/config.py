"""
Configuration constants for the captain auction draft engine.

Values here are defaults consumed at room creation. Once a room exists its
settings are frozen into a RoomConfig and never read from this module again.
"""

# Room Settings
DEFAULT_TOTAL_POINTS = 1000
DEFAULT_TEAM_COUNT = 5
DEFAULT_MEMBER_PER_TEAM = 4
DEFAULT_CAPTAIN_VALUE = 0

MIN_TEAM_COUNT = 2
MAX_TEAM_COUNT = 8

# Timer (all timer values are in tenths of a second: 300 = 30.0s)
INITIAL_TIMER = 300           # 30.0s when an item goes on the block
BID_TIME_EXTENSION = 20       # +2.0s per accepted bid
MIN_TIMER_THRESHOLD = 50      # 5.0s floor; a bid at or below this resets to it
TIMER_INTERVAL_MS = 100       # one tick every 0.1s
TIMER_SYNC_EVERY = 10         # broadcast TIMER_SYNC once per full second

# Bid increment tiers
# Each entry is (max_price, unit): a price at or below max_price must be
# raised by at least unit.
BID_UNIT_RULES = [
    (99, 5),
    (199, 10),
    (299, 15),
    (399, 20),
]

# Above the last tier the unit grows by BID_UNIT_INCREMENT for every
# BID_UNIT_PRICE_THRESHOLD points (400-499 -> 25, 500-599 -> 30, ...)
BID_UNIT_INCREMENT = 5
BID_UNIT_PRICE_THRESHOLD = 100

# Team colors (assigned round-robin in team order)
TEAM_COLORS = [
    '#EF4444',  # red
    '#F59E0B',  # orange
    '#EAB308',  # yellow
    '#10B981',  # green
    '#3B82F6',  # blue
    '#8B5CF6',  # purple
    '#EC4899',  # pink
    '#6366F1',  # indigo
]

# Randomization
SEED_MAX = 2 ** 31 - 1

# Channel names
ROOM_CHANNEL_PREFIX = 'room'
PRESENCE_CHANNEL_PREFIX = 'presence'

# Storage
DRAFT_EVENTS_DIR = 'data/draft_events'
DRAFT_CHECKPOINTS_DIR = 'data/draft_checkpoints'
OUTPUT_DIR = 'data/output'
TEMPLATES_DIR = 'data/templates'

# API Server defaults
API_HOST = '127.0.0.1'
API_PORT = 8000

# Logging
LOG_LEVEL = 'INFO'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
