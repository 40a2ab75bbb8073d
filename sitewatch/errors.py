"""
Error taxonomy for the health engine.

Unknown raw statuses are never errors (they degrade to UNKNOWN). Only two
kinds of failure cross the core's boundary:
- ValidationError: the input cannot be applied (missing or unresolvable ids,
  a second primary host for a site). Reported to the caller, never retried.
- DependencyError: a collaborator (store, vendor API) is unavailable.
"""


class SiteWatchError(Exception):
    """Base class for all errors raised by sitewatch."""


class ValidationError(SiteWatchError, ValueError):
    """Input rejected by the core."""


class PrimaryHostConflictError(ValidationError):
    """A site already has a different primary host device."""

    def __init__(self, site_id: str, existing_device_id: str, device_id: str) -> None:
        super().__init__(
            f"Site {site_id} already has primary host {existing_device_id}; "
            f"refusing to flag {device_id} as primary"
        )
        self.site_id = site_id
        self.existing_device_id = existing_device_id
        self.device_id = device_id


class DependencyError(SiteWatchError):
    """A collaborator the core depends on failed."""


class StoreUnavailableError(DependencyError):
    """The persistence collaborator could not serve the request."""
