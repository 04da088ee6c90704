"""Upstream data connectors"""

from shelter_sync.connectors.ckan_connector import CKANConnector

__all__ = [
    "CKANConnector",
]
