"""
Error taxonomy for the speaker cloud
"""


class CloudError(Exception):
    """Base class for every error the core raises"""


class DeviceNotFound(CloudError):
    """No device matched the lookup (and no fallback applied)"""


class ZoneInvalid(DeviceNotFound):
    """Zone operation refers to an unknown master or breaks zone membership rules"""


class InvalidSlot(CloudError):
    """Preset slot is not an integer in [1, 6]"""


class MalformedInput(CloudError):
    """Structurally invalid request content"""


class PersistenceFailed(CloudError):
    """Durable store write failed; the mutation was not committed"""


class ResolutionFailed(CloudError):
    """Radio directory unreachable or answered with an error; safe to retry"""


class ResolutionIncomplete(CloudError):
    """Directory answered with an identifier that needs another round trip"""


class UnresolvableReference(CloudError):
    """No path from the content reference to a playable location"""
