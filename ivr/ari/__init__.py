# ARI (Asterisk REST Interface) adapter
#
# Components:
# - client.py: ARIClient (HTTP commands + websocket de eventos) e connect()
# - channel.py: ChannelHandle (operações sobre uma chamada)

from .client import ARIClient, connect
from .channel import ChannelHandle

__all__ = [
    "ARIClient",
    "ChannelHandle",
    "connect",
]
