from prometheus_client import Counter, Gauge

WORKOUT_SESSIONS_STARTED_TOTAL = Counter(
    "active_workout_sessions_started_total",
    "Number of workout sessions started on this device",
    ["source"],  # empty | routine
)

WORKOUT_SESSIONS_RESUMED_TOTAL = Counter(
    "active_workout_sessions_resumed_total",
    "Number of workout sessions resumed from the persistence API",
    ["outcome"],  # resumed | not_found | failed
)

WORKOUT_SESSIONS_FINISHED_TOTAL = Counter(
    "active_workout_sessions_finished_total",
    "Number of workout sessions finished on this device",
)

SET_WRITES_TOTAL = Counter(
    "active_session_set_writes_total",
    "Number of remote set writes issued",
    ["kind"],  # upsert | patch
)

SET_WRITE_FAILURES_TOTAL = Counter(
    "active_session_set_write_failures_total",
    "Number of remote set writes that failed",
    ["kind"],
)

SESSION_CACHE_HITS_TOTAL = Counter(
    "active_session_cache_hits_total",
    "Number of local session cache reads that found a session",
)

SESSION_CACHE_MISSES_TOTAL = Counter(
    "active_session_cache_misses_total",
    "Number of local session cache reads that found nothing",
)

SESSION_CACHE_ERRORS_TOTAL = Counter(
    "active_session_cache_errors_total",
    "Number of Redis errors on the local session cache",
)

ACTIVE_SESSION_ELAPSED_SECONDS = Gauge(
    "active_session_elapsed_seconds",
    "Elapsed seconds of the active session, republished on every clock tick",
)
