"""HTTP routers for FanHub.

Each module exposes a ``router`` (:class:`fastapi.APIRouter`) that
:mod:`fanhub.server` includes.  Request bodies use camelCase aliases; domain
failures propagate as :class:`fanhub.errors.FanHubError` and are mapped to
HTTP by the app's exception handler.
"""
