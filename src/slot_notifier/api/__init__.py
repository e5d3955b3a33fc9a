from .base import (
    FAR_FUTURE_DATE,
    ApiStatusError,
    AuthError,
    BookingClient,
    BookingClientError,
    ClientStatus,
    ResponseParseError,
    SessionToken,
    TransportError,
)
from .client_factory import client_from_config, create_client
from .yclients_client import YClientsClient
