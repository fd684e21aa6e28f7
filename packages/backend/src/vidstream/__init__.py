"""vidstream — video sharing backend.

Accounts, channels, and videos behind a JWT session layer with
refresh-token rotation and owner-only mutation of content.
"""

__version__ = "0.1.0"
