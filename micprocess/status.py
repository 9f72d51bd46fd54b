"""Status publisher module for controller status messages."""

import logging
from typing import Optional
from pubsub import pub
from .models.events import StatusEvent
from .models.session import CaptureState
from .errors import MicrophoneError

logger = logging.getLogger(__name__)


class StatusPublisher:
    """Publishes controller status messages using pubsub.pub."""
    
    def __init__(self, topic: str = "microphone.status"):
        """Initialize status publisher.
        
        Args:
            topic: Pub/sub topic name for status events
        """
        self.topic = topic
        logger.info(f"StatusPublisher initialized with topic: {topic}")
    
    def publish_status(self, message: str, state: Optional[CaptureState] = None,
                       error: Optional[MicrophoneError] = None) -> None:
        """Publish a status message to the pub/sub topic.
        
        Args:
            message: Human-readable status text
            state: Controller state after the operation
            error: Failure behind the message, if any
        """
        pub.sendMessage(self.topic, event=StatusEvent(message=message, state=state, error=error))
        logger.debug(f"Published status: {message}")
    
    def get_callback(self):
        """Get callback function for MicrophoneController to use.
        
        Returns:
            Callback function that publishes status messages
        """
        return self.publish_status
