"""Termfleet — fleet tracker for ephemeral remote-access workstations.

Each workstation registers a name and an IP address, gets a DNS subdomain
under the fleet's base domain, and is then probed on a fixed cadence so its
recorded lifecycle status follows reality.

Quickstart::

    python -m termfleet
    # or
    uvicorn termfleet.server:create_app --factory --port 3000
"""

__version__ = "1.0.0"
