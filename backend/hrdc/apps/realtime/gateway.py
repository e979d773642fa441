"""MQTT mirror for the live hub.

Every local publish is packed with msgpack and sent to
`<prefix>/users/<id>` or `<prefix>/groups/<role>`. Each API process
subscribes to `<prefix>/#` and hands envelopes from other processes to its
own hub, so a notification written by one worker reaches browsers
connected to another.
"""

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Optional

import msgpack
import paho.mqtt.client as mqtt
from pydantic import ValidationError

from . import schemas
from .hub import LiveEvent, LiveHub

logger = logging.getLogger(__name__)


class RealtimeGateway:
    def __init__(self, *, hub: Optional[LiveHub] = None) -> None:
        self.enabled = os.getenv("REALTIME_ENABLED", "false").lower() in {"1", "true", "yes", "on"}
        self.internal_url = os.getenv("MQTT_BROKER_INTERNAL_URL", "")
        self.topic_prefix = os.getenv("MQTT_TOPIC_PREFIX", "hrdc/live").rstrip("/")
        self.origin = uuid.uuid4().hex[:16]
        self.hub = hub
        self._client = None
        self._connected = False

    @property
    def active(self) -> bool:
        return self.enabled and bool(self.internal_url)

    def connect(self) -> None:
        if not self.active:
            return
        if self._client:
            return
        self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, protocol=mqtt.MQTTv311)
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message
        self._client.connect_async(self._host(), self._port(), keepalive=30)
        self._client.loop_start()

    def close(self) -> None:
        if not self._client:
            return
        self._client.disconnect()
        self._client.loop_stop()
        self._client = None
        self._connected = False

    def _host(self) -> str:
        return self.internal_url.split("://", 1)[-1].split(":", 1)[0]

    def _port(self) -> int:
        value = self.internal_url.split(":")[-1]
        return int(value) if value.isdigit() else 1883

    def topic_for(self, target_kind: str, target: str) -> str:
        bucket = "users" if target_kind == schemas.LiveTargetKind.USER.value else "groups"
        return f"{self.topic_prefix}/{bucket}/{target}"

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        self._connected = not reason_code.is_failure
        if self._connected:
            client.subscribe(f"{self.topic_prefix}/#", qos=0)
        logger.info("mqtt connected", extra={"mqtt_connects": 1, "rc": str(reason_code)})

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected = False
        logger.warning("mqtt disconnected", extra={"mqtt_disconnects": 1, "rc": str(reason_code)})

    def _on_message(self, client, userdata, message):
        try:
            envelope = self.parse(message.payload)
        except (ValidationError, ValueError, msgpack.ExtraData) as exc:
            logger.warning("mqtt live envelope rejected", extra={"topic": message.topic, "error": str(exc)})
            return
        if envelope.origin == self.origin or self.hub is None:
            return
        live_event = LiveEvent(
            id=envelope.id,
            event=envelope.event.value,
            payload=envelope.payload,
            ts=envelope.ts,
        )
        self.hub.deliver_remote(envelope.targetKind.value, envelope.target, live_event)

    def build_envelope(self, *, target_kind: str, target: str, live_event: LiveEvent) -> schemas.LiveEnvelope:
        return schemas.LiveEnvelope(
            id=live_event.id,
            ts=live_event.ts,
            origin=self.origin,
            targetKind=target_kind,
            target=target,
            event=live_event.event,
            payload=live_event.payload,
        )

    def publish_event(self, *, target_kind: str, target: str, live_event: LiveEvent, qos: int = 0) -> None:
        if not self.active:
            return
        envelope = self.build_envelope(target_kind=target_kind, target=target, live_event=live_event)
        payload = msgpack.packb(envelope.model_dump(mode="json"), use_bin_type=True)
        if not self._client or not self._connected:
            raise RuntimeError("Broker not connected")
        result = self._client.publish(self.topic_for(target_kind, target), payload=payload, qos=qos)
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            raise RuntimeError(f"Broker publish failed: {result.rc}")

    def parse(self, payload: bytes) -> schemas.LiveEnvelope:
        data = msgpack.unpackb(payload, raw=False, strict_map_key=False)
        return schemas.LiveEnvelope.model_validate(data)

    def health(self) -> dict[str, object]:
        return {
            "enabled": self.enabled,
            "connected": self._connected,
            "checked_at": datetime.now(timezone.utc).isoformat(),
        }
