from .protocol import SyncEndpoint
from .client import SyncClient, EndpointTransport, HttpTransport
