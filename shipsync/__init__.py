# shipsync/__init__.py
# Kurasi shipment and buyer mirror: crawler, reconciler and buyer maintenance API.

__version__ = "1.0.0"
