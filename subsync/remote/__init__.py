# Subsync Remote Module
# Gateway to the remote subscription API

from subsync.remote.gateway import (
    FIELD_MAP,
    HttpRemoteGateway,
    RemoteGateway,
    to_local,
    to_remote,
)

__all__ = [
    "RemoteGateway",
    "HttpRemoteGateway",
    "FIELD_MAP",
    "to_local",
    "to_remote",
]
