"""Mini README: Access routing for authenticated identities.

Authentication itself happens elsewhere; this package only decides where an
already authenticated identity lands once it reaches the ledger.
"""

from .router import AccessRouter, Destination, DestinationKind, Identity

__all__ = ["AccessRouter", "Destination", "DestinationKind", "Identity"]
