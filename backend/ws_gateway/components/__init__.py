"""
WebSocket Gateway Components.

- core/       - Foundational components (constants, context, DI)
- connection/ - Transport and per-connection state (channels, presence,
                heartbeat, rate limiting)
- events/     - Inbound event payloads and dispatch
- endpoints/  - WebSocket endpoints (base, mixins, handlers)
- metrics/    - Message flow tracking
- data/       - Async chat persistence

Import from the specific submodules.
"""
