# helpmatch/core/matching/__init__.py
"""
Proximity matching and notification dispatch.

- ``ranking``  : postal-code distance, bucket range, rank-and-cap, sampling
- ``pipeline`` : per-request candidate query and concurrent helper fan-out
- ``scheduler``: periodic tick: select aged unnotified requests, claim, run

Core code talks to storage, identity and mail only through ``ports``.
"""
