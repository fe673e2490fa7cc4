import json

from channels.generic.websocket import AsyncWebsocketConsumer

from emr.services.notifications import group_name


class NotificationsConsumer(AsyncWebsocketConsumer):
    """Per-user notification feed; anonymous sockets are closed."""

    async def connect(self):
        user = self.scope.get('user')
        if user is None or not user.is_authenticated:
            await self.close()
            return
        self.group = group_name(user.id)
        await self.channel_layer.group_add(self.group, self.channel_name)
        await self.accept()
        await self.send(json.dumps({'type': 'welcome', 'userId': user.id}))

    async def disconnect(self, close_code):
        group = getattr(self, 'group', None)
        if group:
            await self.channel_layer.group_discard(group, self.channel_name)

    async def notification_created(self, event):
        # event: {"type": "notification.created", "notification": {...}}
        await self.send(json.dumps(event))
