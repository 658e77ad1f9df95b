from app.routes.verification import router as verification_router
from app.routes.admin import router as admin_router
from app.routes.cron import router as cron_router
from app.routes.notification import router as notification_router

__all__ = ["verification_router", "admin_router", "cron_router", "notification_router"]
