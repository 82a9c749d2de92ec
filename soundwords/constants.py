"""Timing and resolution constants.

The scheduler wakes on a fixed wall-clock interval that does not depend on
tempo.  Each wake-up ("tick") schedules every step whose start falls inside
the next ``TICK_INTERVAL_MS`` of beat time, so tempo only changes how many
beats one tick covers:

- ``TICK_INTERVAL_MS = 100`` - coarse scheduling interval
- ``DEFAULT_BPM = 128`` - tempo used until the transport sends one
- ``RESOLUTION_DEBOUNCE_SECONDS = 1.0`` - delay before a new sound is looked up

Beat arithmetic is exact (``fractions.Fraction``); ``MS_PER_MINUTE`` converts
an integer BPM and an integer interval into beats per tick without rounding.
"""

TICK_INTERVAL_MS = 100
DEFAULT_BPM = 128
MS_PER_MINUTE = 60000

RESOLUTION_DEBOUNCE_SECONDS = 1.0

# Beats spanned by one sound at the top level of a statement.
DEFAULT_STEP_BEATS = 1

# General MIDI percussion range used when a sound has no explicit note.
GM_PERCUSSION_LOW = 35
GM_PERCUSSION_HIGH = 81
DEFAULT_MIDI_CHANNEL = 9
DEFAULT_VELOCITY = 100
