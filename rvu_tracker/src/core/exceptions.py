"""Domain errors raised by the cache, the analytics aggregator and the CRUD services.

Route handlers map these onto HTTP status codes; the services themselves never
build HTTP responses.
"""


class RVUTrackerError(Exception):
    """Base class for every error raised by this package."""


class ReloadFailed(RVUTrackerError):
    """The reference code snapshot could not be reloaded from the backing store."""


class InvalidGranularity(RVUTrackerError):
    def __init__(self, token):
        self.token = token
        super().__init__(f"Invalid period '{token}'. Expected one of: daily, weekly, monthly, yearly")


class MissingDateRange(RVUTrackerError):
    def __init__(self):
        super().__init__("Missing required query parameters: start and end")


class AggregationFailed(RVUTrackerError):
    """The backing store failed while an analytics query was running."""


class VisitNotFound(RVUTrackerError):
    def __init__(self, visit_id: int):
        self.visit_id = visit_id
        super().__init__("Visit not found or unauthorized")


class FavoriteNotFound(RVUTrackerError):
    def __init__(self, hcpcs: str):
        self.hcpcs = hcpcs
        super().__init__("Favorite not found or user not authorized")
