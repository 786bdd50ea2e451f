from __future__ import annotations

import logging
from typing import Optional

from .repository import Repository
from .roster import DatabaseRosterSource, RosterCache, RosterSource, WixRosterSource
from .settings import Settings

logger = logging.getLogger(__name__)


class Services:
	"""Everything handlers reach for, built once by the process entry point.

	Handlers see this object as ``ctx.services``. ``init()`` prepares the
	database schema; ``shutdown()`` releases connections and HTTP clients.
	"""

	def __init__(
		self,
		settings: Settings,
		repository: Repository,
		roster: RosterCache,
		*,
		roster_source: Optional[RosterSource] = None,
	) -> None:
		self.settings = settings
		self.repository = repository
		self.roster = roster
		self._roster_source = roster_source

	@classmethod
	def from_settings(cls, settings: Settings, *, repository: Optional[Repository] = None) -> "Services":
		repository = repository or Repository.from_url(settings.database_url)
		if settings.roster_source == "wix":
			source: RosterSource = WixRosterSource(
				settings.wix_api_key or "",
				settings.wix_site_id or "",
				base_url=settings.wix_base_url,
			)
		else:
			source = DatabaseRosterSource(repository)
		roster = RosterCache(
			source,
			max_entries=settings.roster_cache_max_entries,
			ttl_seconds=settings.roster_cache_ttl_seconds,
		)
		return cls(settings, repository, roster, roster_source=source)

	def init(self) -> None:
		self.repository.create_schema()
		logger.info(
			"Services ready (env=%s, roster source=%s)",
			self.settings.app_env,
			self.settings.roster_source,
		)

	async def shutdown(self) -> None:
		self.roster.invalidate_all()
		aclose = getattr(self._roster_source, "aclose", None)
		if aclose is not None:
			await aclose()
		self.repository.dispose()
