"""
Lumen data layer.

Offline-tolerant, multi-tenant read/write cache for the Lumen training front
end. Presents one consistent view of organizations, identities, learning
units, tasks and submissions drawn from:

- a remote document store (may be unreachable or unconfigured)
- a durable local override cache
- a built-in seed dataset

and maintains each identity's experience / rank progression.

Entry point: ``lumen.repository.LumenRepository``.
"""

__version__ = "1.0.0"
