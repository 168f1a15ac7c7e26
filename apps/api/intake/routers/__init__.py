"""API routers."""

from intake.routers.forms_public import router as forms_public_router
from intake.routers.widget import router as widget_router
