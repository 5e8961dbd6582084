"""Error taxonomy shared by every pagebroker component."""


class BrokerError(Exception):
    """Base class for all errors raised by pagebroker."""


class ConfigurationError(BrokerError):
    """Missing credentials, invalid TTL strings, invalid glob patterns."""


class PolicyViolation(BrokerError):
    """The target URL is denied or not in the allowed list."""


class SessionError(BrokerError):
    """The browser automation service could not be used."""


class SessionSpawnError(SessionError):
    """A local chromedriver process could not be started."""


class SessionConnectError(SessionError):
    """No WebDriver session could be opened against the service."""


class SessionReadinessTimeout(SessionError):
    """The service never reported itself ready."""


class NavigationError(BrokerError):
    """The page could not be loaded or the requested element is missing."""


class PageLoadTimeout(NavigationError):
    """The page never reached ``document.readyState == "complete"``."""


class ElementNotFound(NavigationError):
    """The selector matched nothing on the loaded page."""


class ConversionError(BrokerError):
    """Script injection, HTML extraction or Markdown conversion failed."""


class CacheError(BrokerError):
    """The search cache store could not be opened or queried."""


class SearchProviderError(BrokerError):
    """The search provider returned a malformed or non-2xx response."""


class DownloadError(BrokerError):
    """A binary resource could not be downloaded."""


class FetchCancelled(BrokerError):
    """The fetch deadline expired before the page was extracted."""
