class TransportNotConfigured(Exception):
    """The transport has no credentials; the channel becomes a no-op."""


class DeliveryError(Exception):
    """The transport was reached but refused the message."""
