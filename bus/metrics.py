"""
BusMetrics: Tracks simple statistics for EventBus traffic.
"""


class BusMetrics:
    """
    Counts published, delivered and discarded events.

    Attributes:
        published (int): Events accepted by :meth:`EventBus.publish`.
        delivered (int): Handler invocations performed by :meth:`EventBus.dispatch_pending`.
        dropped (int): Events discarded because the pending queue was full.
        handler_errors (int): Handler invocations that raised.
    """

    def __init__(self):
        """Initialize all counters to zero."""
        self.published = 0
        self.delivered = 0
        self.dropped = 0
        self.handler_errors = 0

    def report(self) -> dict:
        """
        Return a snapshot of current metrics.

        Returns:
            dict: 'published', 'delivered', 'dropped' and 'handler_errors' counters.
        """
        return {
            "published": self.published,
            "delivered": self.delivered,
            "dropped": self.dropped,
            "handler_errors": self.handler_errors,
        }
