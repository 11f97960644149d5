"""
Life Kernel - Domain Package

The event-sourced core behind a personal life-management app
(habits, tasks, check-ins, finance envelopes, weekly review).

DESIGN PRINCIPLES:
1. Every user action is an immutable, ordered event
2. State is always a pure fold over events
3. Commands are validated before anything is emitted
4. Every command is idempotent by its key
5. Storage, time and scheduling live at the boundary
"""

__version__ = "1.0.0"
__author__ = "Life Kernel Team"
