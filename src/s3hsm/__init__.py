"""s3hsm - HSM storage tier connector for S3-compatible object stores.

Moves one object at a time between local disk and an object store, with
optional per-object streaming encryption. The key of an encrypted object
lives only in the location string returned by ``store``.

Usage:
    from s3hsm import TransferOrchestrator, load_settings
    orchestrator = TransferOrchestrator(load_settings("s3hsm.yaml"))
    location = orchestrator.store("0000A1B2", "/data/file", encrypt=True)
    orchestrator.retrieve(location.encode(), "/data/file.restored")
"""

from s3hsm.config import ConnectionParams, ConnectorSettings, load_settings
from s3hsm.location import LocationCipher, NamingConvention, ObjectLocation
from s3hsm.transfer import TransferOrchestrator, TransferReport, TransferState

__version__ = "0.1.0"
__all__ = [
    "ConnectionParams",
    "ConnectorSettings",
    "LocationCipher",
    "NamingConvention",
    "ObjectLocation",
    "TransferOrchestrator",
    "TransferReport",
    "TransferState",
    "load_settings",
]
