"""
Scribo: a lightweight RESTful microservice that records latency pings
exchanged between named network nodes. Authenticated routes are signed with
Hawk using per-node keys issued by ``scribo register``.
"""

__version__ = "1.0.0"
