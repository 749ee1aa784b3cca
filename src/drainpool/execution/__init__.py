"""drainpool execution — the coordination engine.

MODULE MAP (recommended reading order)
──────────────────────────────────────
Shared state
  1. queue.py      ─ WorkQueue, EXHAUSTED sentinel
  2. signal.py     ─ CompletionSignal

Workers
  3. outcomes.py   ─ WorkerOutcome, GroupResult variants
  4. worker.py     ─ Worker run loop and state machine

Coordination
  5. timeout.py    ─ episode deadlines
  6. groups.py     ─ StructuredGroup, UnstructuredGroup, JoinMode
  7. pool.py       ─ WorkerPool, run_pool
"""
