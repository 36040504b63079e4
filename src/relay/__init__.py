"""Call leg relay: connection registry, audio buffering and dispatch.

Each call leg streams audio over a WebSocket. Buffered audio is transcribed,
translated and spoken into the other leg of the same call.
"""
