"""
Video Stream Handler - pushes annotated frames and status to browser clients
"""
import base64
import logging
import time

from flask_socketio import Namespace, emit

logger = logging.getLogger(__name__)


class StreamHandler(Namespace):
    """SocketIO namespace the dashboard subscribes to for frames and status"""

    def __init__(self, state, namespace='/stream'):
        super().__init__(namespace)
        self.state = state
        self.connected_clients = 0

    def on_connect(self, auth=None):
        """Client connected: send the current status right away"""
        self.connected_clients += 1
        logger.info(f"Stream client connected: {self.namespace} ({self.connected_clients} connected)")
        emit('status', self.state.snapshot())

    def on_disconnect(self, reason=None):
        """Client disconnected"""
        self.connected_clients = max(0, self.connected_clients - 1)
        logger.info(f"Stream client disconnected: {self.namespace} (reason: {reason})")

    def on_get_status(self, data=None):
        """Explicit status request from the dashboard"""
        emit('status', self.state.snapshot())


def make_publisher(socketio, namespace='/stream'):
    """
    Build the frame publisher the recognition service calls after every tick.
    Broadcasts the JPEG frame (base64) and the status snapshot.
    """
    def publish(jpeg, snapshot):
        socketio.emit('frame', {
            'frame': base64.b64encode(jpeg).decode('utf-8'),
            'server_time': time.time() * 1000,
        }, namespace=namespace)
        socketio.emit('status', snapshot, namespace=namespace)
    return publish
