"""meshup - connect a machine to a mesh VPN through its local daemon."""

__version__ = "0.1.0"
