"""Advisory status channel to the presenter's own view."""

import logging
from typing import Optional

from pubsub import pub

from ..models.presenter import PresenterStatus

logger = logging.getLogger(__name__)

PRESENTER_STATUS_TOPIC = "presenter.status"


class PresenterBroadcastChannel:
    """Publishes PresenterStatus snapshots on a pubsub topic.

    Delivery is best effort: a failing listener is logged and never disturbs
    the recording or the send that triggered the update.
    """

    def __init__(self, topic: str = PRESENTER_STATUS_TOPIC):
        self.topic = topic
        self.last_status: Optional[PresenterStatus] = None
        self.failures = 0

    def publish(self, status: PresenterStatus) -> bool:
        self.last_status = status
        try:
            pub.sendMessage(self.topic, status=status)
        except Exception as e:
            self.failures += 1
            logger.warning(f"Presenter broadcast failed: {e}")
            return False
        return True
