"""
ReelVault - media catalog that relays cloud-drive videos and comic pages.
"""

__version__ = "0.1.0"
