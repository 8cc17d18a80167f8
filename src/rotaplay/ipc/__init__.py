"""IPC with the audio engine.

Sends control commands to the Liquidsoap telnet server.
"""

from .liquidsoap import LiquidsoapClient, send_skip

__all__ = ['LiquidsoapClient', 'send_skip']
