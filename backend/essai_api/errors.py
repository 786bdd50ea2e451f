from __future__ import annotations


class EssaiError(Exception):
	"""Base class for errors raised by the API's own components."""


class ConfigurationError(EssaiError):
	"""Settings are missing or invalid; raised once at process start."""


class RosterLookupError(EssaiError):
	"""The roster source could not resolve a teacher's students."""


class UnknownColumnError(EssaiError):
	"""An upsert payload names columns the target table does not have."""
