from pydantic import BaseModel


class NotificationCountsSchema(BaseModel):
    unread_messages: int = 0
    pending_appointments: int = 0
    new_referrals: int = 0


class NotificationCountsResponseSchema(BaseModel):
    counts: NotificationCountsSchema
