"""Coaching policy thresholds - single source of truth.

Every metric, classifier and heuristic in the engine reads its cutoffs from
here. Values are tuning policy, not physiology facts; change them here and
nowhere else.
"""

# ---------------------------------------------------------------------------
# Metric derivation
# ---------------------------------------------------------------------------

# Percent change between half-window means that counts as a trend
TREND_CHANGE_PERCENT = 2.0

# A night is "poor" when its sleep score is below this share of baseline
POOR_SLEEP_RATIO = 0.85

# Session types that count as hard efforts
HARD_SESSION_TYPES: frozenset[str] = frozenset({"tempo", "intervals", "threshold", "long", "progression"})

# Session types converted to easy running when intensity is reduced
INTENSITY_SESSION_TYPES: frozenset[str] = frozenset({"intervals", "tempo", "threshold"})

# Fallback training stress per hour when a record carries none
FALLBACK_STRESS_PER_HOUR = 50.0

# ---------------------------------------------------------------------------
# Baselines
# ---------------------------------------------------------------------------

BASELINE_WINDOW_DAYS = 30
BASELINE_LOOKBACK_DAYS = 60
MIN_BASELINE_DAYS = 14
BASELINE_STALE_DAYS = 14

# ---------------------------------------------------------------------------
# Context aggregation
# ---------------------------------------------------------------------------

HISTORY_DAYS = 14
TREND_WINDOW_DAYS = 7
RECENT_RUN_DAYS = 7
UPCOMING_SESSION_COUNT = 7
CHRONIC_LOAD_WEEKS = 4

# Manual wellness ordinal scale (index 1..5)
MANUAL_SLEEP_SCORE = {1: 20, 2: 40, 3: 60, 4: 80, 5: 100}
MANUAL_SLEEP_HOURS = {1: 4.5, 2: 5.5, 3: 6.5, 4: 7.5, 5: 8.5}
MANUAL_HRV_MS = {1: 35.0, 2: 42.0, 3: 50.0, 4: 58.0, 5: 65.0}
MANUAL_RESTING_HR = {1: 58.0, 2: 55.0, 3: 52.0, 4: 50.0, 5: 48.0}
MANUAL_DEFAULT_LEVEL = 3

# ---------------------------------------------------------------------------
# Running conditions (temperature C, wind km/h, precipitation probability %)
# Checked worst tier first.
# ---------------------------------------------------------------------------

CONDITIONS_POOR = {"temp_above": 32.0, "temp_below": -15.0, "wind_above": 40.0, "rain_above": 70.0}
CONDITIONS_CHALLENGING = {"temp_above": 28.0, "temp_below": -5.0, "wind_above": 25.0, "rain_above": 50.0}
CONDITIONS_ACCEPTABLE = {"temp_above": 24.0, "temp_below": 0.0, "wind_above": 15.0, "rain_above": 25.0}
IDEAL_TEMP_RANGE = (10.0, 22.0)
IDEAL_MAX_WIND = 15.0
IDEAL_MAX_RAIN = 15.0

# ---------------------------------------------------------------------------
# Adaptation loop
# ---------------------------------------------------------------------------

OVERREACH_RATIO = 1.15
SEVERE_OVERREACH_RATIO = 1.3
OVERREACH_INTENSITY_ADJUSTMENT = -10.0
ON_TARGET_MIN_RATIO = 0.85
SEVERE_UNDERTRAINING_RATIO = 0.5
MIN_COMPLETION_RATE = 0.75
OVERREACH_VOLUME_ADJUSTMENT = -10.0
DEFAULT_PROGRESSION_PERCENT = 5.0
MIN_ADJUSTED_DISTANCE_KM = 2.0
DELOAD_MODES: frozenset[str] = frozenset({"recovery_mode", "injury_prevention", "peaking"})

# ---------------------------------------------------------------------------
# Bottleneck detection
# ---------------------------------------------------------------------------

MIN_LONG_RUN_KM = {"5k": 8.0, "10k": 14.0, "half": 18.0, "marathon": 28.0, "ultra": 35.0}
HARD_SHARE_LIMIT = 0.30
ACWR_ELEVATED = 1.3
ACWR_CRITICAL = 1.5
TSB_FATIGUE_FLOOR = -25.0
RHR_ELEVATION_BPM = 7.0
LOAD_SPIKE_PERCENT = 15.0
FATIGUE_FLAGS_FOR_RISK = 2
FATIGUE_FLAGS_CRITICAL = 4
PRE_RACE_PEAK_WEEKS = 3
VOLUME_FLOOR_RATIO = 0.8

# Weekly volume assumed when an athlete has no recent history
DEFAULT_BASE_VOLUME_KM = 40.0
