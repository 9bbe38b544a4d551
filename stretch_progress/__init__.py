"""
Stretch progression engine

Turns a log of completed stretching sessions into:
- a consecutive-day streak with freeze (flex save) credits
- time-boxed daily/weekly/monthly/special challenges
- XP, levels and level-gated rewards
"""

__version__ = "0.1.0"
