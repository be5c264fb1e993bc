"""Real-time delivery — EventBus → WebSocket.

Learn: Events flow through two hops:
1. QuoteService → EventBus.publish (in-process broadcast)
2. EventBus consumer → WebSocket → client (one consumer per connection)

This decouples the write path from however many clients are listening.
"""
