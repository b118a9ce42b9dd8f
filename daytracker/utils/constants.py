"""Constants and default values."""

# Timing defaults
DEFAULT_GRACE_MINUTES = 15  # Finish within this window still counts as on time
DEFAULT_AUTO_ADVANCE_MINUTES = 20  # Unattended blocks resolve as overtime here
DEFAULT_REMINDER_WINDOW_SECONDS = 60  # Reminder may fire during the end minute
DEFAULT_TICK_INTERVAL = 1  # Seconds between engine recomputations

# Limits
MAX_ACTIVITY_LENGTH = 200
MAX_BLOCKS_PER_DAY = 100
UPCOMING_LIMIT = 3
HISTORY_PAGE_SIZE = 20

# Default block form values
DEFAULT_START_TIME = "09:00"
DEFAULT_END_TIME = "10:00"

# Shown at the top of a reminder
MOTIVATIONAL_PHRASES = [
    "Time is gold, don't waste it!",
    "Keep it up, you can do it!",
    "Amazing work done!",
    "Cheer up! Clean it up!",
    "Every second counts!",
    "Your focus is your power!",
    "Make today great!",
    "The time to act is now!",
]
