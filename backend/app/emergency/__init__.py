"""
emergency — Proximity-based emergency push fan-out.

Sub-modules:
    channels/    — Push-delivery transports (FCM, simulation)
    directory    — Nearby-user lookup over the user_locations table
    dispatcher   — Concurrent fan-out with per-recipient failure isolation
    proximity    — Bounding-box / haversine nearness predicates
    service      — Lookup → dispatch orchestration for one event
    models       — Data structures shared across the system
"""
