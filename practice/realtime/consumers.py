import uuid

from asgiref.sync import sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.contrib.auth.models import AnonymousUser

from practice.models import UserClinic


def clinic_group(clinic_id) -> str:
    return f"updates.clinic.{clinic_id}"


def is_member(user, clinic_id) -> bool:
    return UserClinic.objects.filter(user=user, clinic_id=clinic_id, is_active=True, clinic__is_active=True).exists()


class UpdatesConsumer(AsyncJsonWebsocketConsumer):
    """Pushes dashboard refresh events.

    Anonymous sockets are closed with 4001.  Sending
    ``{"action": "subscribe", "clinic_id": ...}`` joins that clinic's group
    when the user holds an active membership there.
    """

    async def connect(self):
        self.clinic_groups = set()
        user = self.scope.get("user") or AnonymousUser()
        if not user.is_authenticated:
            await self.close(code=4001)
            return
        self.user = user
        await self.accept()
        await self.send_json({"type": "welcome", "message": "connected"})

    async def disconnect(self, close_code):
        for group in getattr(self, "clinic_groups", ()):
            await self.channel_layer.group_discard(group, self.channel_name)

    async def receive_json(self, content, **kwargs):
        action = content.get("action") if isinstance(content, dict) else None
        if action == "ping":
            await self.send_json({"type": "pong"})
        elif action == "subscribe" and content.get("clinic_id"):
            try:
                clinic_id = str(uuid.UUID(str(content["clinic_id"])))
            except ValueError:
                clinic_id = None
            if clinic_id is None or not await sync_to_async(is_member)(self.user, clinic_id):
                await self.send_json({"type": "error", "code": 4003, "message": "forbidden"})
                return
            group = clinic_group(clinic_id)
            await self.channel_layer.group_add(group, self.channel_name)
            self.clinic_groups.add(group)
            await self.send_json({"type": "subscribed", "clinic_id": clinic_id})
        else:
            await self.send_json({"type": "error", "message": "unknown action"})

    async def broadcast_refresh(self, event):
        # {"type": "broadcast.refresh", "version", "ts", "clinic_id", "keys"}
        await self.send_json(event)
