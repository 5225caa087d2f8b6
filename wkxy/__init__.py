"""CAN / CAN FD signal matrix encoding and decoding, with periodic sending over SocketCAN."""

__version__ = "0.1.0"
__all__ = ["__version__"]