"""Constants and default values."""

# Which row survives when two entries describe the same dose
STATUS_PRECEDENCE = {
    "scheduled": 0,
    "missed": 1,
    "taken": 2,
}

# Due/overdue window either side of the reminder time, and the auto-miss threshold
DEFAULT_GRACE_MINUTES = 15

# Minimum distance to a later reminder before it is reported as "next"
NEXT_DOSE_LOOKAHEAD_MINUTES = 15

# Entries for one medication this close together are the same dose
DUPLICATE_WINDOW_SECONDS = 60

# Taken doses this close to a reminder count as taken for it
RECENT_DOSE_MATCH_MINUTES = 60

# Default look-back for adherence stats
DEFAULT_STATS_DAYS = 30

# Monday=1 .. Sunday=7
ALL_WEEKDAYS = (1, 2, 3, 4, 5, 6, 7)
WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

# Notes written by the engine
TAKE_NOW_NOTE = "Marked via Take Now button"
AUTO_MISSED_NOTE = "Automatically marked as missed - overdue by more than {grace} minutes"

# Status strings for get_next_dose_time
NO_REMINDERS_TEXT = "No reminders set"
NO_UPCOMING_TEXT = "No upcoming reminders"
TIMING_ERROR_TEXT = "Error calculating next dose"

# Default timezone
DEFAULT_TIMEZONE = "UTC"

# Days of scheduled doses generated ahead for one medication
DEFAULT_MATERIALIZE_DAYS = 7
