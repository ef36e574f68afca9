"""
Schedule Kernel

The leaf layer of the project scheduling engine:
- Duration and Float value types on a fixed working calendar
- Typed scheduling errors and the ScheduleOutcome boundary type
- Injectable clocks
- Structured JSON logging
"""

__version__ = "0.1.0"
