class FetcherError(Exception):
    """Base class for failures of an external fetcher/analyzer."""


class CrawlFetchError(FetcherError):
    pass


class PerformanceFetchError(FetcherError):
    pass


class RankQueryError(FetcherError):
    pass
