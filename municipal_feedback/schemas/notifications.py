from pydantic import AnyHttpUrl, BaseModel

from .common import CamelModel


class PushKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscriptionIn(CamelModel):
    endpoint: AnyHttpUrl
    keys: PushKeys
