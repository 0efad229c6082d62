"""Connector dashboard client and refresh poller."""

from .client import ConnectorClient, ConnectorError, ConnectorOfflineError
from .poller import PollerState, QuotaPoller
