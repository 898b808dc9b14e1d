"""
MQTT Notification Helper

Pushes a message to the owner's topic when a generation task reaches a
terminal status. The storefront still polls; this only shortens the wait.
"""
import paho.mqtt.client as mqtt
import json
import os
import logging
from typing import Any, Callable, Dict, Optional

from gen_tasks.models import TaskSnapshot, TaskStatus

logger = logging.getLogger("uvicorn.error")

MQTT_CLIENT_ID = "keychain-gen-server"

# Topic templates
TOPIC_TASK_COMPLETED = "generation/task/completed/{user_id}"
TOPIC_TASK_FAILED = "generation/task/failed/{user_id}"


def mqtt_enabled() -> bool:
    return os.getenv("MQTT_ENABLED", "false").strip().lower() in ("1", "true", "yes", "on")


def create_mqtt_client() -> mqtt.Client:
    """
    Create and configure MQTT client

    Returns:
        mqtt.Client: Configured MQTT client
    """
    client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=MQTT_CLIENT_ID)

    username = os.getenv("MQTT_USERNAME", "")
    password = os.getenv("MQTT_PASSWORD", "")
    if username and password:
        client.username_pw_set(username, password)

    def on_connect(client, userdata, flags, reason_code, properties):
        if reason_code == 0:
            logger.info("[MQTT] Connected to broker")
        else:
            logger.error(f"[MQTT] Connection failed with code: {reason_code}")

    def on_disconnect(client, userdata, flags, reason_code, properties):
        if reason_code != 0:
            logger.warning(f"[MQTT] Unexpected disconnection: {reason_code}")

    client.on_connect = on_connect
    client.on_disconnect = on_disconnect

    return client


def build_task_message(snapshot: TaskSnapshot) -> Optional[Dict[str, Any]]:
    """Topic-independent payload for a terminal task, None for open tasks."""
    if snapshot.status == TaskStatus.SUCCEEDED:
        return {
            "task_id": snapshot.id,
            "status": "completed",
            "design_id": snapshot.design_id,
            "download_url": snapshot.model_glb_url,
            "thumbnail_url": snapshot.thumbnail_url,
            "mode": snapshot.mode,
        }
    if snapshot.status in (TaskStatus.FAILED, TaskStatus.DELETED):
        return {
            "task_id": snapshot.id,
            "status": snapshot.status.value.lower(),
            "error": snapshot.error,
            "mode": snapshot.mode,
        }
    return None


def publish_task_update(
    user_id: Optional[str],
    snapshot: TaskSnapshot,
    client_factory: Callable[[], mqtt.Client] = create_mqtt_client
) -> bool:
    """
    Publish a terminal task update to the owner's topic

    Args:
        user_id: Task owner
        snapshot: Task view after the terminal update
        client_factory: Builds the MQTT client

    Returns:
        bool: True if sent successfully
    """
    if not user_id:
        logger.warning("[MQTT] Cannot send notification: user_id is missing")
        return False

    payload = build_task_message(snapshot)
    if payload is None:
        return False

    template = TOPIC_TASK_COMPLETED if snapshot.status == TaskStatus.SUCCEEDED else TOPIC_TASK_FAILED
    topic = template.format(user_id=user_id)

    try:
        client = client_factory()
        client.connect(os.getenv("MQTT_BROKER", "localhost"), int(os.getenv("MQTT_PORT", "1883")), keepalive=60)
        client.loop_start()

        result = client.publish(topic, json.dumps(payload, default=str), qos=1, retain=False)
        result.wait_for_publish(timeout=5)

        if result.is_published():
            logger.info(f"[MQTT] Sent {payload['status']} notification: user_id={user_id[:8]}..., task_id={snapshot.id[:8]}...")
            success = True
        else:
            logger.error(f"[MQTT] Failed to publish message: topic={topic}")
            success = False

        client.loop_stop()
        client.disconnect()

        return success

    except Exception as e:
        logger.error(f"[MQTT] Error sending task notification: {e}")
        return False


def get_notifier() -> Optional[Callable[[Optional[str], TaskSnapshot], bool]]:
    """publish_task_update when MQTT_ENABLED is set, otherwise None."""
    if not mqtt_enabled():
        return None
    logger.info(f"[MQTT] Notifications enabled: {os.getenv('MQTT_BROKER', 'localhost')}:{os.getenv('MQTT_PORT', '1883')}")
    return publish_task_update
