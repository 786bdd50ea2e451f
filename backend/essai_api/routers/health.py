from __future__ import annotations

from datetime import datetime, timezone

from ..routing import Router

router = Router(prefix="/health")


@router.get("", requires_auth=False)
async def health(ctx, next):
	ctx.response_body = {
		"status": "ok",
		"version": ctx.services.settings.app_version,
		"timestamp": datetime.now(timezone.utc).isoformat(),
	}
