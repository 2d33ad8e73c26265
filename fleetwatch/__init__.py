"""Fleetwatch — node registry and health monitor for a compute fleet.

Quickstart::

    from fleetwatch.db import SQLiteStore
    from fleetwatch.nodes import FleetMonitor, NodeProber, NodeStore

    store = NodeStore(SQLiteStore("./data/fleetwatch.db"))
    async with NodeProber(store) as prober:
        nodes = await FleetMonitor(store, prober).refresh()
"""

__version__ = "1.0.0"
