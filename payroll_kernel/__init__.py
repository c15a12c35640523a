"""
Payroll Kernel

Shared foundation for the payroll batch engine:
- Immutable domain value objects (workers, findings, cycles, workflow)
- Injectable clock
- Typed exception hierarchy
- Structured JSON logging
- SQLAlchemy persistence base and models
"""

__version__ = "0.1.0"
