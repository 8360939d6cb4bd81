"""Host-side control of microcontroller pins and peripherals over WebSocket."""

__version__ = "0.1.0"
