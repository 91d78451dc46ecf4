"""Calendar Proxy.

An edge proxy for a hosted calendar renderer that keeps calendar source
URLs out of the browser and hides private event details.

Sources are configured as plain URLs or `fernet://` tokens. Tokens are
decrypted only on the way to the upstream; responses are stripped of
calendar URLs, and event listings have declined events removed, non-public
events reduced to "BUSY", and back-to-back events merged.
"""

__version__ = "0.1.0"
