"""FanHub — building ventilation fan provisioning and control service.

Quickstart::

    from fanhub.db import get_db, init_db
    from fanhub.control.controller import set_speed

    init_db()
    fan = set_speed(get_db(), floor_id, fan_id, rpm=75)

Run the HTTP + WebSocket server with ``python -m fanhub.server``.
"""

__version__ = "1.0.0"
