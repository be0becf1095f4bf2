"""Live fan control: speed/status changes and the broadcast channel.

The controller persists changes; the WebSocket handler pushes committed
changes to every connected observer through the hub.
"""
