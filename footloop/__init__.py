"""
Footloop - foot-pedal controller bridge for an OSC-controlled looper.

Modules:
    pedals: Raw controller value → logical pedal decoding
    leds: LED panel model, blink timers and controller LED writes
    loops: Per-loop state → LED pattern state machine
    dispatcher: Play/Record mode pedal dispatch to looper commands
    protocol: Looper OSC command builders and inbound message decoding
    session: Looper connection, ping handshake and heartbeat liveness
    state: Mutable bridge state (mode, selection, loops)
    osc: OSC transport, reply clients and message statistics
    midi: Foot controller port discovery
    config: YAML configuration loading and validation
    log: Compact stdout logger
    bridge: Serialized event loop wiring it all together
"""

__version__ = "0.1.0"

# Note: Modules are imported on-demand so that python -m footloop.bridge
# works without RuntimeWarning.
