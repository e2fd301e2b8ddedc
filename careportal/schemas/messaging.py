from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List

class Contact(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = ""
    user_type: Optional[str] = None
    has_unread: bool = False
    last_message_time: Optional[str] = None

class Message(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    sender_id: int
    receiver_id: int
    content: str
    is_read: bool = False
    created_at: Optional[str] = None
    sender_name: Optional[str] = None
    receiver_name: Optional[str] = None
    sender_type: Optional[str] = None
    receiver_type: Optional[str] = None

class SendMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    receiver_id: int = Field(..., alias="receiverId")
    content: str

class Conversation(BaseModel):
    contact_id: int
    messages: List[Message] = []
    error: Optional[str] = None
    refreshed_at: Optional[str] = None

class Notification(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    title: str = ""
    message: str = ""
    is_read: bool = False
    created_at: Optional[str] = None
    type: str = ""
    related_id: Optional[int] = None
    metadata: Optional[dict] = None

class NotificationBell(BaseModel):
    notifications: List[Notification] = []
    unread_notifications: int = 0
    unread_messages: int = 0
    total_unread: int = 0
    error: Optional[str] = None
    unread_messages_error: Optional[str] = None
