"""In-memory access resolver for development and testing.

Tokens are registered up front; an absent token resolves to a guest.
"""

from orderflow.access.port import AccessResolver, ActorContext
from orderflow.errors import Forbidden, Unauthorized


class FakeAccessResolver(AccessResolver):
    def __init__(self) -> None:
        self.actors: dict[str, ActorContext] = {}
        self.calls: list[dict] = []

    def register(
        self,
        token: str,
        actor_id: str,
        role: str,
        business_id: str | None = None,
        **kwargs,
    ) -> ActorContext:
        actor = ActorContext.for_role(actor_id, role, business_id=business_id, **kwargs)
        self.actors[token] = actor
        return actor

    def resolve(self, token, business_id=None):
        self.calls.append({"method": "resolve", "token": token, "business_id": business_id})
        if not token:
            return ActorContext.guest()
        actor = self.actors.get(token)
        if actor is None:
            raise Unauthorized("Invalid or expired credentials")
        if business_id and actor.is_staff and actor.business_id != business_id:
            raise Forbidden("Actor has no access to this business")
        return actor
