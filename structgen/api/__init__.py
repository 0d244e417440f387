"""structgen adapter package.

Architectural role:
- Defines the operator-facing CLI boundary.
- Delegates all orchestration to the core layer.
"""
