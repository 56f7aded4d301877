"""Memory map, I/O register devices, PXI/RSA/SHA/timer peripherals and message routing for a 3DS emulator."""

__version__ = "0.1.0"