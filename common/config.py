"""
Simulation constants and configuration.
"""

# History
HISTORY_CAPACITY = 20       # Ring buffer slots (one per tick)

# Timing (milliseconds)
TICK_PERIOD_MS = 1000       # Client advances one tick per period
SERVER_DELAY_MS = 3500      # Simulated network + processing delay

# Movement (position units per millisecond)
CLIENT_SPEED = 1
SERVER_SPEED = 1

# Loop
IDLE_SLEEP = 0.001          # Seconds to yield between loop iterations

# Correction handoff policy: 'replace', 'queue' or 'reject'
DEFAULT_HANDOFF_POLICY = 'replace'

# Metrics
METRICS_DIR = 'analysis/logs'
