"""Host-side building blocks for a USB debug bridge: subnets, logging, device services and USB device tracking."""

__version__ = "0.1.0"