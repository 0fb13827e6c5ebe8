"""
Sandboxer - On-demand VNC desktop sandboxes with service discovery
"""

__version__ = "1.0.0"
