"""
Socialflow - workflow execution engine for social publishing graphs.

Graphs of trigger, generator, modifier and action nodes are validated,
scheduled and executed with per-workflow exclusivity, idempotent job
delivery and platform-aware publishing.
"""

__version__ = "0.1.0"
